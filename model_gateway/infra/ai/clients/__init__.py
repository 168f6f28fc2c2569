"""Execution clients, one per modality."""

from __future__ import annotations

from model_gateway.infra.ai.capabilities.types import Modality
from model_gateway.infra.ai.clients.base import ExecutionClient, race_abort
from model_gateway.infra.ai.clients.chat import ChatClient, ChatStream, ObjectStream
from model_gateway.infra.ai.clients.embedding import EmbeddingClient
from model_gateway.infra.ai.clients.media import ImageClient, SpeechClient, TranscriptionClient
from model_gateway.infra.ai.clients.rerank import RerankClient

CLIENT_CLASSES: dict[Modality, type[ExecutionClient]] = {
    Modality.CHAT: ChatClient,
    Modality.EMBEDDING: EmbeddingClient,
    Modality.IMAGE: ImageClient,
    Modality.SPEECH: SpeechClient,
    Modality.TRANSCRIPTION: TranscriptionClient,
    Modality.RERANK: RerankClient,
}


def client_class_for(modality: Modality) -> type[ExecutionClient]:
    return CLIENT_CLASSES[Modality(modality)]


__all__ = [
    "CLIENT_CLASSES",
    "ChatClient",
    "ChatStream",
    "EmbeddingClient",
    "ExecutionClient",
    "ImageClient",
    "ObjectStream",
    "RerankClient",
    "SpeechClient",
    "TranscriptionClient",
    "client_class_for",
    "race_abort",
]
