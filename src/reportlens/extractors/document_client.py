# src/reportlens/extractors/document_client.py
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from openai import AsyncOpenAI

from reportlens.config import Settings, load_settings
from reportlens.core.errors import DocumentError, ExternalServiceError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".txt": "text/plain",
}

SYSTEM_PROMPT = (
    "You analyse company annual reports. "
    "Always answer with a single JSON object and nothing else."
)


# ======================================================================
# Document handle
# ======================================================================

@dataclass(frozen=True)
class DocumentHandle:
    """Opaque reference to an uploaded document on disk."""
    path: Path

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "DocumentHandle":
        return cls(Path(path))

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def mime_type(self) -> str:
        suffix = self.path.suffix.lower()
        if suffix not in MIME_TYPES:
            raise DocumentError(f"unsupported document type '{suffix}'", {"path": str(self.path)})
        return MIME_TYPES[suffix]

    def read_bytes(self) -> bytes:
        if not self.path.is_file():
            raise DocumentError("document not found", {"path": str(self.path)})
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise DocumentError(f"cannot read document: {exc}", {"path": str(self.path)}) from exc


def as_handle(document: Union[DocumentHandle, str, Path]) -> DocumentHandle:
    if isinstance(document, DocumentHandle):
        return document
    return DocumentHandle.from_path(document)


# ======================================================================
# External generative document-analysis service
# ======================================================================

class DocumentAnalysisClient:
    """
    One-shot calls to the OpenAI chat completions API: the document goes
    along with every instruction, the raw text answer comes back.

    The AsyncOpenAI client is created lazily so constructing a pipeline
    without OPENAI_API_KEY is fine until a stage actually runs.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings or load_settings()
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise ExternalServiceError("OPENAI_API_KEY is not set")
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.openai_timeout,
            )
        return self._client

    @staticmethod
    def _document_part(document: DocumentHandle) -> Dict[str, Any]:
        mime = document.mime_type
        data = document.read_bytes()

        if mime == "text/plain":
            return {"type": "text", "text": data.decode("utf-8", errors="replace")}

        encoded = base64.b64encode(data).decode("ascii")
        return {
            "type": "file",
            "file": {
                "filename": document.name,
                "file_data": f"data:{mime};base64,{encoded}",
            },
        }

    async def generate(
        self,
        document: DocumentHandle,
        instruction: str,
        *,
        temperature: float = 0.1,
    ) -> str:
        """Send (document, instruction) and return the raw response text."""
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": instruction},
            self._document_part(document),
        ]

        client = self._get_client()
        model = self.settings.openai_model
        logger.info("llm: querying model %s for %s", model, document.name)

        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                temperature=temperature,
            )
        except Exception as exc:
            logger.error("llm: API error: %s", exc)
            raise ExternalServiceError(f"document analysis request failed: {exc}", {"model": model}) from exc

        try:
            text = completion.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise ExternalServiceError("invalid API response structure", {"model": model}) from exc

        if not text or not text.strip():
            logger.error("llm: empty response from model")
            raise ExternalServiceError("empty response from model", {"model": model})

        logger.debug("llm: raw response length %d characters", len(text))
        return text
