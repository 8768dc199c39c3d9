"""
Artifact ingestion from an environment's source-of-truth API.

The API may answer with a JSON list of items, a single JSON object, or a
raw XML document. Each item is normalized into a FileArtifact with a
recognized extension and, for XML, a declaration line.
"""
import itertools
import logging
import time
from datetime import datetime, timezone
from typing import Any, List

import httpx

from config_promoter.core.config import settings
from config_promoter.core.exceptions import TransientHostError, ValidationError
from config_promoter.services.folder_sync import XML_DECLARATION, FileArtifact
from config_promoter.utils.async_utils import retry_async

logger = logging.getLogger(__name__)

CONTENT_KEYS = ("content", "xml", "xmlContent")
FILENAME_KEYS = ("filename", "name")

_sequence = itertools.count(1)


def _generated_filename() -> str:
    return f"config-{int(time.time() * 1000)}-{next(_sequence)}.xml"


def normalize_artifact(data: Any) -> FileArtifact:
    """Turn one API item into a FileArtifact."""
    if isinstance(data, str):
        return FileArtifact.create(_generated_filename(), data)

    if not isinstance(data, dict):
        raise ValidationError("Invalid API response format")

    content = next((data[k] for k in CONTENT_KEYS if data.get(k)), None)
    if not content:
        raise ValidationError("No XML content found in API response")
    if not isinstance(content, (str, bytes)):
        raise ValidationError("Artifact content must be text")

    filename = next((data[k] for k in FILENAME_KEYS if data.get(k)), None) or _generated_filename()
    return FileArtifact.create(str(filename), content)


def parse_artifact_response(response: httpx.Response) -> List[FileArtifact]:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        payload = response.json()
    elif response.text.lstrip().startswith("<"):
        return [normalize_artifact(response.text)]
    else:
        try:
            payload = response.json()
        except ValueError:
            raise ValidationError("Invalid API response format")

    if isinstance(payload, list):
        return [normalize_artifact(item) for item in payload]
    if isinstance(payload, dict):
        return [normalize_artifact(payload)]
    raise ValidationError("Invalid API response format")


class ArtifactService:
    """Fetches and normalizes artifacts from a source API"""

    def __init__(self, timeout: float = None, max_retries: int = None, retry_delay: float = None):
        self.timeout = timeout or settings.GITHUB_TIMEOUT_SECONDS
        self.max_retries = settings.GITHUB_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.GITHUB_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    async def _get(self, api_url: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(api_url, timeout=self.timeout)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            if code >= 500 or code == 429:
                raise TransientHostError(f"Failed to fetch artifacts: HTTP {code}", code) from e
            raise ValidationError(f"Failed to fetch artifacts: HTTP {code} from {api_url}") from e
        except httpx.TransportError as e:
            raise TransientHostError(f"Failed to fetch artifacts: {e}") from e

    async def fetch_artifacts(self, api_url: str) -> List[FileArtifact]:
        """
        Fetch artifacts from api_url.

        Raises:
            ValidationError: missing URL, client error or unusable response
            TransientHostError: the API stayed unavailable after retries
        """
        if not api_url:
            raise ValidationError("No API URL configured")

        response = await retry_async(
            self._get,
            api_url,
            max_attempts=self.max_retries,
            delay=self.retry_delay,
            exceptions=(TransientHostError,),
            description=f"fetch artifacts from {api_url}",
        )
        artifacts = parse_artifact_response(response)
        logger.info(f"Fetched {len(artifacts)} artifacts from {api_url}")
        return artifacts

    @staticmethod
    def generate_sample_artifacts(env_name: str, count: int = None) -> List[FileArtifact]:
        """Sample configuration documents, used to seed a fresh environment."""
        count = settings.SAMPLE_ARTIFACT_COUNT if count is None else count
        timestamp = datetime.now(timezone.utc).isoformat()
        artifacts = []
        for i in range(1, count + 1):
            content = (
                f"{XML_DECLARATION}\n"
                f'<configuration environment="{env_name}">\n'
                f'  <setting id="setting-{i}">\n'
                f"    <name>Example Setting {i}</name>\n"
                f"    <value>Value for {env_name} environment</value>\n"
                f"    <description>This is a sample configuration for {env_name}</description>\n"
                f"    <timestamp>{timestamp}</timestamp>\n"
                f"  </setting>\n"
                f"</configuration>"
            )
            artifacts.append(FileArtifact.create(f"{env_name}-config-{i}.xml", content))
        return artifacts
