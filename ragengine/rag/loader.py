"""Document loading for the RAG pipeline.

Handles:
- Plain text and markdown files (read directly)
- YAML frontmatter stripping for markdown
- Delegation of PDF / DOC / DOCX to an external text extractor
"""
import asyncio
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import structlog
import yaml

from ragengine import config
from ragengine.errors import ExtractionError, LoadError

logger = structlog.get_logger()

PLAIN_TEXT_EXTENSIONS = {".txt"}
MARKDOWN_EXTENSIONS = {".md", ".markdown"}
EXTRACTED_EXTENSIONS = {".pdf", ".doc", ".docx"}
SUPPORTED_EXTENSIONS = PLAIN_TEXT_EXTENSIONS | MARKDOWN_EXTENSIONS | EXTRACTED_EXTENSIONS


@dataclass
class LoadedDocument:
    """Text of a document plus whatever metadata came with it."""

    path: Path
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class TextExtractor(Protocol):
    """Turns a non-plain-text document into plain text."""

    async def extract(self, path: Path) -> str:
        ...


class CommandLineExtractor:
    """Extract text by running ``pdftotext`` / ``docx2txt``."""

    COMMANDS: Dict[str, List[str]] = {
        ".pdf": ["pdftotext", "{path}", "-"],  # "-" means output to stdout
        ".docx": ["docx2txt", "{path}"],
        ".doc": ["docx2txt", "{path}"],
    }

    def __init__(self, timeout: float = None):
        self.timeout = timeout or config.EXTRACTION_TIMEOUT

    async def extract(self, path: Path) -> str:
        """Extract plain text from a PDF or Word document.

        Raises:
            ExtractionError: If the tool is missing, times out, fails or
                produces no text
        """
        template = self.COMMANDS.get(path.suffix.lower())
        if template is None:
            raise ExtractionError(f"No extractor for file type: {path.suffix}")

        program = template[0]
        if shutil.which(program) is None:
            raise ExtractionError(f"{program} is not installed (needed for {path.name})")

        args = [arg.format(path=str(path)) for arg in template[1:]]
        logger.info("extracting_text", path=str(path), tool=program)

        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExtractionError(f"Failed to start {program}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExtractionError(f"{program} timed out after {self.timeout}s") from e

        if process.returncode != 0:
            raise ExtractionError(
                f"{program} failed for {path.name}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )

        content = stdout.decode("utf-8", errors="replace").strip()
        if not content:
            raise ExtractionError(f"No text extracted from {path.name}")

        logger.debug("text_extracted", path=str(path), chars=len(content))
        return content


class DocumentLoader:
    """Loads document text, delegating rich formats to an extractor."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

    def __init__(self, extractor: Optional[TextExtractor] = None):
        self.extractor = extractor or CommandLineExtractor()

    @staticmethod
    def is_supported(path: Path) -> bool:
        return path.suffix.lower() in SUPPORTED_EXTENSIONS

    async def load(self, path: Path) -> LoadedDocument:
        """Load the text of a document.

        Args:
            path: Path to the document

        Returns:
            LoadedDocument with the text used for chunking

        Raises:
            LoadError: If the file is missing, unreadable or unsupported
            ExtractionError: If the external extractor fails
        """
        if not path.is_file():
            raise LoadError(f"File does not exist: {path}")

        suffix = path.suffix.lower()

        if suffix in EXTRACTED_EXTENSIONS:
            text = await self.extractor.extract(path)
            return LoadedDocument(path=path, text=text)

        if suffix not in SUPPORTED_EXTENSIONS:
            raise LoadError(f"Unsupported file type: {suffix or '(none)'}")

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("document_read_error", path=str(path), error=str(e))
            raise LoadError(f"Failed to read {path}: {e}") from e

        if suffix in MARKDOWN_EXTENSIONS:
            frontmatter, text = self._parse_frontmatter(content)
            return LoadedDocument(path=path, text=text, metadata=frontmatter)

        return LoadedDocument(path=path, text=content)

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Args:
            content: Full markdown content

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            return {}, content

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, content[match.end() :]
