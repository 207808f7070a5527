"""
Document Processor Adapter

Hands uploaded files to an external text-extraction backend and returns
plain text plus metadata. The engine itself never parses binary formats;
the native backend only reads files that already are text.

Backends:
- native: text/plain, text/markdown, text/html read from disk
- unstructured_hosted / unstructured_self_hosted: Unstructured.io API
- mistral: Mistral document processing API
"""

from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, SecretStr

from ragengine.config.settings import ProcessorSettings
from ragengine.core.exceptions import ConfigurationError, DocumentProcessingError
from ragengine.core.types import Document, ProcessedDocument, ProcessorType
from ragengine.observability.logging import get_logger

logger = get_logger("ragengine.processor")

MIME_TYPES = {
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "html": "text/html",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
}
DEFAULT_MIME_TYPE = "application/octet-stream"
NATIVE_MIME_TYPES = frozenset({"text/plain", "text/markdown", "text/html"})

UNSTRUCTURED_PATH = "/general/v0/general"
MISTRAL_PATH = "/v1/files/process"


def detect_mime_type(file_path: str | Path) -> str:
    """MIME type from the file extension; unknown or missing maps to octet-stream."""
    suffix = Path(file_path).suffix.lower().lstrip(".")
    return MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


class ProcessorConfig(BaseModel):
    """Connection details for one processor backend."""

    processor_type: ProcessorType
    api_key: SecretStr | None = None
    api_url: str | None = None


class DocumentProcessor:
    """
    Routes files to the configured extraction backend.

    Usage:
        processor = DocumentProcessor()
        processor.register_config(ProcessorConfig(
            processor_type=ProcessorType.MISTRAL, api_key="...",
        ))
        processed = await processor.process("report.pdf", ProcessorType.MISTRAL)
        document = to_document(processed, knowledge_base_id=kb.id)
    """

    def __init__(
        self,
        configs: list[ProcessorConfig] | None = None,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._configs: dict[ProcessorType, ProcessorConfig] = {}
        self._timeout = timeout
        self._transport = transport
        for config in configs or []:
            self.register_config(config)

    def register_config(self, config: ProcessorConfig) -> None:
        self._configs[config.processor_type] = config

    def _config(self, processor_type: ProcessorType) -> ProcessorConfig:
        config = self._configs.get(processor_type)
        if config is None:
            raise ConfigurationError(
                f"Processor {processor_type.value} is not configured",
                context={"processor": processor_type.value},
            )
        return config

    async def process(
        self,
        file_path: str | Path,
        processor_type: ProcessorType | str = ProcessorType.NATIVE,
    ) -> ProcessedDocument:
        """Extract text from a file with the given backend."""
        path = Path(file_path)
        processor_type = ProcessorType(processor_type)
        mime_type = detect_mime_type(path)

        logger.debug(
            "Processing document",
            file=path.name,
            processor=processor_type.value,
            mime_type=mime_type,
        )

        if processor_type == ProcessorType.NATIVE:
            return self._process_native(path, mime_type)
        elif processor_type == ProcessorType.MISTRAL:
            return await self._process_mistral(path, mime_type)
        elif processor_type == ProcessorType.UNSTRUCTURED_HOSTED:
            config = self._config(processor_type)
            if config.api_key is None:
                raise ConfigurationError("Unstructured API key required")
            base_url = config.api_url or "https://api.unstructuredapp.io"
            return await self._process_unstructured(
                path,
                mime_type,
                base_url.rstrip("/") + UNSTRUCTURED_PATH,
                api_key=config.api_key.get_secret_value(),
            )
        else:
            config = self._config(processor_type)
            if not config.api_url:
                raise ConfigurationError("Unstructured API URL required for self-hosted")
            return await self._process_unstructured(
                path,
                mime_type,
                config.api_url.rstrip("/") + UNSTRUCTURED_PATH,
            )

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise DocumentProcessingError(f"Failed to read file {path}: {e}", cause=e)

    def _process_native(self, path: Path, mime_type: str) -> ProcessedDocument:
        if mime_type not in NATIVE_MIME_TYPES:
            raise DocumentProcessingError(
                f"Native processor does not support MIME type: {mime_type}",
                context={"mime_type": mime_type},
            )

        try:
            content = self._read(path).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentProcessingError(f"File {path.name} is not valid UTF-8", cause=e)

        return ProcessedDocument(
            title=path.name,
            content=content,
            mime_type=mime_type,
            metadata={"processor": ProcessorType.NATIVE.value, "mime_type": mime_type},
        )

    async def _post(
        self,
        service: str,
        url: str,
        files: dict[str, Any],
        headers: dict[str, str],
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, files=files, headers=headers)
        except httpx.HTTPError as e:
            raise DocumentProcessingError(f"Failed to send request to {service}: {e}", cause=e)

        if response.is_error:
            raise DocumentProcessingError(
                f"{service} API error: {response.text}",
                context={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise DocumentProcessingError(f"Failed to parse {service} response", cause=e)

    async def _process_mistral(self, path: Path, mime_type: str) -> ProcessedDocument:
        config = self._config(ProcessorType.MISTRAL)
        if config.api_key is None:
            raise ConfigurationError("Mistral API key required")

        base_url = (config.api_url or "https://api.mistral.ai").rstrip("/")
        data = await self._post(
            "Mistral",
            base_url + MISTRAL_PATH,
            files={"file": (path.name, self._read(path), mime_type)},
            headers={"Authorization": f"Bearer {config.api_key.get_secret_value()}"},
        )

        if not isinstance(data, dict) or "text" not in data:
            raise DocumentProcessingError("Mistral response has no text field")

        return ProcessedDocument(
            title=path.name,
            content=data["text"],
            mime_type=mime_type,
            metadata={
                "processor": ProcessorType.MISTRAL.value,
                "pages": data.get("pages"),
                "language": data.get("language"),
                "mime_type": mime_type,
            },
        )

    async def _process_unstructured(
        self,
        path: Path,
        mime_type: str,
        endpoint: str,
        api_key: str | None = None,
    ) -> ProcessedDocument:
        headers = {"unstructured-api-key": api_key} if api_key else {}
        elements = await self._post(
            "Unstructured",
            endpoint,
            files={"files": (path.name, self._read(path), mime_type)},
            headers=headers,
        )

        if not isinstance(elements, list):
            raise DocumentProcessingError("Unstructured response is not a list of elements")

        processor = (
            ProcessorType.UNSTRUCTURED_HOSTED if api_key else ProcessorType.UNSTRUCTURED_SELF_HOSTED
        )
        return ProcessedDocument(
            title=path.name,
            content="\n\n".join(e.get("text", "") for e in elements),
            mime_type=mime_type,
            metadata={
                "processor": processor.value,
                "elements": len(elements),
                "mime_type": mime_type,
            },
        )


def processor_from_settings(settings: ProcessorSettings) -> DocumentProcessor:
    """Register every backend that has the credentials it needs."""
    processor = DocumentProcessor(timeout=settings.request_timeout)

    if settings.unstructured_api_key:
        processor.register_config(
            ProcessorConfig(
                processor_type=ProcessorType.UNSTRUCTURED_HOSTED,
                api_key=settings.unstructured_api_key,
                api_url=settings.unstructured_hosted_url,
            )
        )
    processor.register_config(
        ProcessorConfig(
            processor_type=ProcessorType.UNSTRUCTURED_SELF_HOSTED,
            api_url=settings.unstructured_self_hosted_url,
        )
    )
    if settings.mistral_api_key:
        processor.register_config(
            ProcessorConfig(
                processor_type=ProcessorType.MISTRAL,
                api_key=settings.mistral_api_key,
                api_url=settings.mistral_url,
            )
        )
    return processor


def to_document(
    processed: ProcessedDocument,
    knowledge_base_id: str,
    *,
    user_id: str | None = None,
    file_path: str | None = None,
    file_size: int | None = None,
) -> Document:
    """Wrap processor output as an engine Document."""
    processor = processed.metadata.get("processor", ProcessorType.NATIVE.value)
    return Document(
        knowledge_base_id=knowledge_base_id,
        user_id=user_id,
        title=processed.title,
        content=processed.content,
        file_path=file_path,
        file_type=processed.mime_type,
        file_size=file_size if file_size is not None else len(processed.content.encode("utf-8")),
        processor=ProcessorType(processor),
        metadata=dict(processed.metadata),
    )
