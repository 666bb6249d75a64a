from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.rag.types import ChatRequest, Document


class ChatParams(BaseModel):
    """Chat request body; wire names are camelCase."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    text_content: str | None = Field(default=None, alias="textContent")
    content: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    assistant_id: str | None = Field(default=None, alias="assistantId")
    user_id: str | None = Field(default=None, alias="userId")
    enable_vector_store: bool = Field(default=False, alias="enableVectorStore")
    enable_tool: bool = Field(default=False, alias="enableTool")
    only_tool: bool = Field(default=False, alias="onlyTool")
    enable_agent: bool = Field(default=False, alias="enableAgent")

    def to_chat_request(self) -> ChatRequest:
        return ChatRequest(
            text_content=self.text_content,
            content=self.content,
            session_id=self.session_id,
            assistant_id=self.assistant_id,
            enable_vector_store=self.enable_vector_store,
            enable_tool=self.enable_tool,
            only_tool=self.only_tool,
        )


class SyncChatResponse(BaseModel):
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assistant_id: str = Field(alias="assistantId", min_length=1)
    file_url: str = Field(alias="fileURL", min_length=1)


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    assistant_id: str = Field(alias="assistantId")
    chunks: int = 0


class DeleteResponse(BaseModel):
    status: str = "success"
    message: str = "Documents deleted successfully"
    deleted: int = 0


class KnowledgeQueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    assistant_id: str | None = Field(default=None, alias="assistantId")
    top_k: int = Field(default=5, alias="topK", ge=1, le=1000)


class KnowledgeItem(BaseModel):
    id: str
    content: str
    metadata: dict[str, Any]

    @classmethod
    def from_document(cls, document: Document) -> KnowledgeItem:
        return cls(id=document.doc_id, content=document.content, metadata=document.metadata)


class KnowledgeQueryResponse(BaseModel):
    status: str = "success"
    results: list[KnowledgeItem]
