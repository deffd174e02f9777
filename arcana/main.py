"""Quart application exposing the knowledge base to collaborators."""
import logging
from typing import Optional

from quart import Quart, request, jsonify
import structlog

from arcana import config
from arcana.rag.service import IndexBuildError, RetrievalService, assemble_context


def configure_logging(level: str = None) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=(level or config.LOG_LEVEL).upper(), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger()


def create_app(service: Optional[RetrievalService] = None, auto_initialize: bool = True) -> Quart:
    """Create the Quart app around a retrieval service.

    Args:
        service: Retrieval service to expose (default built from config)
        auto_initialize: Load (and if needed build) the index before serving
    """
    app = Quart(__name__)
    app.retrieval_service = service or RetrievalService()

    @app.before_serving
    async def startup():
        if auto_initialize:
            await app.retrieval_service.initialize()

    @app.route("/api/knowledge-base/process", methods=["GET"])
    async def knowledge_base_status():
        """Report whether the knowledge base holds any records."""
        service = app.retrieval_service
        ready = service.is_ready()
        return jsonify({
            "ready": ready,
            "count": service.store.get_count(),
            "message": "Knowledge base is ready"
            if ready
            else "Knowledge base is empty. Please process documents first.",
        })

    @app.route("/api/knowledge-base/process", methods=["POST"])
    async def process_knowledge_base():
        """Rebuild the index from the documents directory.

        Returns JSON:
        {
            "success": true,
            "stats": {"sources_processed": ..., "chunks_created": ..., ...}
        }
        """
        try:
            stats = await app.retrieval_service.build_index_from_directory()
        except IndexBuildError as e:
            logger.error("knowledge_base_process_failed", error=str(e))
            return jsonify({"success": False, "error": str(e)}), 500

        return jsonify({
            "success": True,
            "message": "Knowledge base processed successfully",
            "stats": stats,
        })

    @app.route("/api/knowledge-base/context", methods=["POST"])
    async def knowledge_context():
        """Assemble prompt context for a set of terms.

        Expects JSON body:
        {
            "terms": ["The Fool", "The Tower", "The Star"]
        }
        """
        data = await request.get_json(silent=True)

        if not isinstance(data, dict) or not isinstance(data.get("terms"), list):
            return jsonify({"error": "Missing 'terms' list in request body"}), 400

        terms = [str(t).strip() for t in data["terms"] if str(t).strip()]
        if not terms:
            return jsonify({"error": "At least one non-empty term is required"}), 400

        service = app.retrieval_service
        if not service.is_ready():
            logger.info("knowledge_context_skipped_not_ready")
            return jsonify({"context": "", "knowledge": []})

        knowledge = await service.retrieve_knowledge(terms)
        context = assemble_context(knowledge)

        return jsonify({
            "context": context,
            "knowledge": [
                {
                    "term": k.query_term,
                    "context": k.assembled_context,
                    "sources": [
                        {
                            "source": r.source,
                            "page": r.metadata.page,
                            "score": round(r.score, 3),
                        }
                        for r in k.top_results
                    ],
                }
                for k in knowledge
            ],
        })

    return app


if __name__ == "__main__":
    configure_logging()
    create_app().run(host="0.0.0.0", port=5001)
