"""Transcription providers and failover client."""
from lockin.infrastructure.transcription.azure_speech import AzureSpeechProvider, to_azure_locale
from lockin.infrastructure.transcription.openai_whisper import OpenAIWhisperProvider
from lockin.infrastructure.transcription.transcription_client import TranscriptionClient
from lockin.infrastructure.transcription.transcription_factory import create_transcription_client

__all__ = [
    "AzureSpeechProvider",
    "OpenAIWhisperProvider",
    "TranscriptionClient",
    "create_transcription_client",
    "to_azure_locale"
]
