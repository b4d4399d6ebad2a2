"""Gemini streaming transcription backend."""

import logging
from typing import Optional, Dict, Any, Iterator

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from google.oauth2 import service_account

from .base import AbstractTranscriptionBackend
from ..exceptions import TranscriptionError
from ..models.transcription import TranscriptionChunk

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPE = "audio/mp3"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

NO_SPEECH = "No speech detected"

TRANSCRIPTION_PROMPT = (
    "Please transcribe any speech in this audio.\n"
    "- Output only the words that were spoken, with natural punctuation.\n"
    "- Ignore background noise, music and other non-speech sounds.\n"
    "- Do not put spaces between Chinese, Japanese or Thai characters; "
    "only keep spaces that separate words in other scripts.\n"
    f"- If there is no clear speech, respond with \"{NO_SPEECH}\"."
)


class GeminiBackend(AbstractTranscriptionBackend):
    """Google Gemini backend: one inline audio part in, streamed text out."""

    service_name = "Google Gemini"

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = "gemini-2.5-flash",
                 include_thoughts: bool = True,
                 vertex: bool = False,
                 project: Optional[str] = None,
                 location: str = "us-central1",
                 credentials_path: Optional[str] = None):
        """Initialize Gemini backend.

        Args:
            api_key: Gemini API key (Developer API mode)
            model: Model name
            include_thoughts: Ask the model for thought summaries while it works
            vertex: Use Vertex AI instead of the Developer API
            project: Google Cloud project (Vertex AI mode)
            location: Google Cloud region (Vertex AI mode)
            credentials_path: Service account JSON file (Vertex AI mode)
        """
        if not vertex and not api_key:
            raise ValueError("Gemini API key is required - set gemini.api_key or GEMINI_API_KEY")
        self.api_key = api_key
        self.model = model
        self.include_thoughts = include_thoughts
        self.vertex = vertex
        self.project = project
        self.location = location
        self.credentials_path = credentials_path
        self.client: Optional[genai.Client] = None

    @classmethod
    def from_config(cls, config) -> "GeminiBackend":
        """Build a backend from the `gemini` section of a VxgConfig."""
        model = config.get('gemini.model', 'gemini-2.5-flash')
        vertex = bool(config.get('gemini.vertex', False))
        logger.debug(f"Config: model={model}, vertex={vertex}")
        return cls(
            api_key=config.get_gemini_api_key(),
            model=model,
            include_thoughts=bool(config.get('gemini.include_thoughts', True)),
            vertex=vertex,
            project=config.get('gemini.project'),
            location=config.get('gemini.location', 'us-central1'),
            credentials_path=config.get_credentials_path(),
        )

    def initialize(self) -> bool:
        """Create the Gemini client."""
        if self.vertex:
            credentials = None
            if self.credentials_path:
                logger.info(f"Loading Google credentials from: {self.credentials_path}")
                credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_path, scopes=[CLOUD_PLATFORM_SCOPE])
                self.project = self.project or credentials.project_id
            logger.info(f"Using Vertex AI project {self.project} in {self.location}")
            self.client = genai.Client(vertexai=True, project=self.project,
                                       location=self.location, credentials=credentials)
        else:
            self.client = genai.Client(api_key=self.api_key)

        logger.info(f"Gemini backend initialized with model {self.model}")
        return True

    def _build_config(self) -> Optional[types.GenerateContentConfig]:
        if not self.include_thoughts:
            return None
        return types.GenerateContentConfig(
            thinking_config=types.ThinkingConfig(include_thoughts=True),
        )

    def transcribe_stream(self, audio_data: bytes) -> Iterator[TranscriptionChunk]:
        """Stream a transcription of `audio_data`."""
        if self.client is None:
            raise TranscriptionError("Gemini backend is not initialized")

        logger.debug(f"Submitting {len(audio_data)} bytes of audio to {self.model}")
        contents = [
            types.Part.from_bytes(data=audio_data, mime_type=AUDIO_MIME_TYPE),
            TRANSCRIPTION_PROMPT,
        ]

        try:
            stream = self.client.models.generate_content_stream(
                model=self.model,
                contents=contents,
                config=self._build_config(),
            )
            for response in stream:
                yield response_to_chunk(response)
        except genai_errors.APIError as e:
            logger.error(f"Gemini API error: {e}")
            raise TranscriptionError(f"Gemini API error {e.code}: {e.message}") from e
        except httpx.HTTPError as e:
            logger.error(f"Network error talking to Gemini: {e}")
            raise TranscriptionError(f"Network error talking to Gemini: {e}") from e

    def cleanup(self) -> None:
        """Drop the client."""
        self.client = None

    def get_stats(self) -> Dict[str, Any]:
        """Get Gemini-specific statistics."""
        stats = super().get_stats()
        stats.update({
            "model": self.model,
            "vertex": self.vertex,
            "include_thoughts": self.include_thoughts,
        })
        return stats


def response_to_chunk(response: types.GenerateContentResponse) -> TranscriptionChunk:
    """Convert one streamed response into a TranscriptionChunk.

    Thought parts become the chunk's reasoning snippet, every other text part
    is transcript text. Usage counters are copied when the response has them.
    """
    text_parts = []
    thought_parts = []
    for candidate in (response.candidates or [])[:1]:
        content = candidate.content
        for part in (content.parts if content and content.parts else []):
            if not part.text:
                continue
            if part.thought:
                thought_parts.append(part.text)
            else:
                text_parts.append(part.text)

    usage = response.usage_metadata
    return TranscriptionChunk(
        text="".join(text_parts) or None,
        thought="".join(thought_parts).strip() or None,
        input_tokens=usage.prompt_token_count if usage else None,
        output_tokens=usage.candidates_token_count if usage else None,
        thoughts_tokens=usage.thoughts_token_count if usage else None,
    )
