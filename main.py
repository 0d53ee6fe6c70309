"""docchat - grounded conversations about documents.

FastAPI application exposing the RAG answer operation, per-conversation chat
history and model loading status.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from models.state import Answer, ChatMessage, DocumentText
from services.chat_service import ChatService, suggestions
from services.exceptions import RAGError
from services.model_registry import ModelRegistry, get_model_registry
from services.rag_service import RAGService

VERSION = "1.0.0"


class AnswerRequest(BaseModel):
    context_text: str
    query: str = Field(..., min_length=1, max_length=2000)


class MessageRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    documents: List[DocumentText] = Field(default_factory=list)
    project_chat: bool = False


class MessageResponse(BaseModel):
    message: ChatMessage
    grounded: bool
    status: str
    history: List[ChatMessage]


def create_app(registry: Optional[ModelRegistry] = None) -> FastAPI:
    """Build the application.

    Args:
        registry: Model registry to use; defaults to the process-wide one.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from config.config import get_settings
        from utils.logging_setup import setup_logging

        settings = get_settings()
        setup_logging(
            log_dir=settings.LOG_DIR,
            level=settings.LOG_LEVEL,
            development=settings.ENV.lower() == "development",
        )
        settings.validate_keys()

        model_registry = registry or get_model_registry()
        rag_service = RAGService(model_registry, settings=settings)
        app.state.registry = model_registry
        app.state.rag_service = rag_service
        app.state.chat_service = ChatService(rag_service, settings=settings)
        app.state.warm_up_task = None

        if settings.PRELOAD_MODELS:
            app.state.warm_up_task = asyncio.create_task(model_registry.warm_up())
            logger.info("🚀 Model warm-up started in background")

        logger.info("✅ Application startup successful")

        yield

        logger.info("Shutting down docchat...")
        if app.state.warm_up_task is not None:
            await asyncio.gather(app.state.warm_up_task, return_exceptions=True)
        await rag_service.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="docchat API",
        description="Grounded question answering over documents",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": VERSION,
        }

    @app.get("/models/status")
    async def model_status(request: Request):
        return request.app.state.registry.status()

    @app.get("/suggestions")
    async def get_suggestions(project_chat: bool = False):
        return {"suggestions": list(suggestions(project_chat))}

    @app.post("/answer", response_model=Answer)
    async def answer(body: AnswerRequest, request: Request):
        """Answer a question from plain context text."""
        try:
            return await request.app.state.rag_service.answer_query(
                body.context_text, body.query
            )
        except RAGError as e:
            raise HTTPException(status_code=e.http_status, detail=e.message)

    @app.post("/conversations/{conversation_id}/messages", response_model=MessageResponse)
    async def send_message(conversation_id: str, body: MessageRequest, request: Request):
        chat_service: ChatService = request.app.state.chat_service
        if chat_service.is_processing(conversation_id):
            raise HTTPException(
                status_code=409,
                detail="A message for this conversation is still being processed.",
            )

        try:
            reply = await chat_service.send_message(
                conversation_id,
                body.query,
                body.documents,
                project_chat=body.project_chat,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return MessageResponse(
            message=reply.message,
            grounded=reply.grounded,
            status=reply.status,
            history=list(chat_service.history(conversation_id)),
        )

    @app.get("/conversations/{conversation_id}/messages", response_model=List[ChatMessage])
    async def get_messages(conversation_id: str, request: Request):
        return list(request.app.state.chat_service.history(conversation_id))

    @app.delete("/conversations/{conversation_id}")
    async def delete_conversation(conversation_id: str, request: Request):
        if not request.app.state.chat_service.remove_conversation(conversation_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        return {"deleted": conversation_id}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=7860, log_level="info", reload=False)
