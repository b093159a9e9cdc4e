"""
Testes dos provedores Azure Speech e OpenAI Whisper (httpx.MockTransport).
"""
import httpx
import pytest

from lockin.config.settings import Settings
from lockin.domain.exceptions import ConfigurationError, TranscriptionError
from lockin.infrastructure.transcription import (
    AzureSpeechProvider,
    OpenAIWhisperProvider,
    create_transcription_client,
    to_azure_locale
)


class TestAzureLocale:
    """Testes do mapeamento de idioma para locale Azure."""
    
    @pytest.mark.parametrize("language,expected", [
        (None, "en-US"),
        ("en", "en-US"),
        ("pt", "pt-BR"),
        ("zh", "zh-CN"),
        ("pt-PT", "pt-PT"),
        ("nl", "nl-NL")
    ])
    def test_to_azure_locale(self, language, expected):
        """Códigos conhecidos, tags completas e padrão xx-XX."""
        assert to_azure_locale(language) == expected


class TestAzureSpeechProvider:
    """Testes do provedor Azure."""
    
    @pytest.mark.asyncio
    async def test_request_shape_and_response(self):
        """Envia áudio com locale, formato detalhado e chave de assinatura."""
        captured = {}
        
        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, json={
                "RecognitionStatus": "Success",
                "DisplayText": "Hello there.",
                "Duration": 25_000_000
            })
        
        provider = AzureSpeechProvider(
            api_key="azure-key",
            region="eastus",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        
        result = await provider.transcribe(b"audio-bytes", language="fr", format="webm")
        
        request = captured["request"]
        assert request.url.host == "eastus.stt.speech.microsoft.com"
        assert request.url.params["language"] == "fr-FR"
        assert request.url.params["format"] == "detailed"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "azure-key"
        assert request.headers["Content-Type"] == "audio/webm"
        assert request.content == b"audio-bytes"
        assert result.text == "Hello there."
        assert result.duration == pytest.approx(2.5)
    
    @pytest.mark.asyncio
    async def test_recognition_failure_raises(self):
        """RecognitionStatus diferente de Success gera TranscriptionError."""
        provider = AzureSpeechProvider(
            api_key="k",
            region="eastus",
            client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"RecognitionStatus": "NoMatch"})
            ))
        )
        
        with pytest.raises(TranscriptionError, match="NoMatch"):
            await provider.transcribe(b"audio")
    
    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        """Status >= 400 gera TranscriptionError."""
        provider = AzureSpeechProvider(
            api_key="k",
            region="eastus",
            client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda request: httpx.Response(401, text="Unauthorized")
            ))
        )
        
        with pytest.raises(TranscriptionError, match="HTTP 401"):
            await provider.transcribe(b"audio")
    
    def test_requires_credentials(self):
        """Chave e região são obrigatórias."""
        with pytest.raises(ValueError):
            AzureSpeechProvider(api_key="", region="eastus")


class TestOpenAIWhisperProvider:
    """Testes do provedor Whisper."""
    
    @pytest.mark.asyncio
    async def test_multipart_request_and_segments(self):
        """Envia multipart com model, verbose_json e idioma de duas letras."""
        captured = {}
        
        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = request.read()
            captured["headers"] = request.headers
            return httpx.Response(200, json={
                "text": " Hello world ",
                "language": "english",
                "duration": 3.2,
                "segments": [
                    {"start": 0.0, "end": 1.4, "text": " Hello"},
                    {"start": 1.4, "end": 3.2, "text": " world"},
                    {"start": 3.2, "end": 3.2, "text": "   "}
                ]
            })
        
        provider = OpenAIWhisperProvider(
            api_key="sk-test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        
        result = await provider.transcribe(b"audio-bytes", language="pt-BR", format="mp3")
        
        body = captured["body"]
        assert captured["headers"]["Authorization"] == "Bearer sk-test"
        assert captured["headers"]["Content-Type"].startswith("multipart/form-data")
        assert b'name="model"\r\n\r\nwhisper-1' in body
        assert b'name="response_format"\r\n\r\nverbose_json' in body
        assert b'name="language"\r\n\r\npt' in body
        assert b'filename="audio.mp3"' in body
        assert result.text == "Hello world"
        assert result.duration == 3.2
        assert [segment.text for segment in result.segments] == ["Hello", "world"]
    
    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        """Status >= 400 gera TranscriptionError."""
        provider = OpenAIWhisperProvider(
            api_key="sk-test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda request: httpx.Response(429, json={"error": "rate limited"})
            ))
        )
        
        with pytest.raises(TranscriptionError, match="HTTP 429"):
            await provider.transcribe(b"audio")
    
    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        """Erros de rede viram TranscriptionError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)
        
        provider = OpenAIWhisperProvider(
            api_key="sk-test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        
        with pytest.raises(TranscriptionError, match="request failed"):
            await provider.transcribe(b"audio")


class TestTranscriptionFactory:
    """Testes de create_transcription_client."""
    
    def _settings(self, **overrides) -> Settings:
        values = {
            "AZURE_SPEECH_KEY": None,
            "AZURE_SPEECH_REGION": None,
            "OPENAI_API_KEY": None,
            "TRANSCRIPTION_PRIMARY_PROVIDER": "azure"
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    
    def test_both_providers_primary_azure(self, breaker):
        """Azure primário e Whisper fallback."""
        client = create_transcription_client(
            self._settings(AZURE_SPEECH_KEY="k", AZURE_SPEECH_REGION="eastus", OPENAI_API_KEY="sk"),
            breaker
        )
        
        assert client.primary.name == "azure-speech"
        assert client.fallback.name == "openai-whisper"
    
    def test_primary_openai(self, breaker):
        """TRANSCRIPTION_PRIMARY_PROVIDER=openai inverte os papéis."""
        client = create_transcription_client(
            self._settings(
                AZURE_SPEECH_KEY="k",
                AZURE_SPEECH_REGION="eastus",
                OPENAI_API_KEY="sk",
                TRANSCRIPTION_PRIMARY_PROVIDER="openai"
            ),
            breaker
        )
        
        assert client.primary.name == "openai-whisper"
        assert client.fallback.name == "azure-speech"
    
    def test_single_provider_has_no_fallback(self, breaker):
        """Apenas um provedor configurado vira primário sem fallback."""
        client = create_transcription_client(self._settings(OPENAI_API_KEY="sk"), breaker)
        
        assert client.primary.name == "openai-whisper"
        assert client.fallback is None
    
    def test_no_provider_raises(self, breaker):
        """Sem provedores configurados: ConfigurationError."""
        with pytest.raises(ConfigurationError):
            create_transcription_client(self._settings(), breaker)
