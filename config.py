"""
Configuration for the Trinity orchestration service.

Environment Variables:
    OPENAI_API_KEY          - OpenAI key (default provider for every agent)
    ANTHROPIC_API_KEY       - Anthropic/Claude key
    GOOGLE_API_KEY          - Google Gemini key (OpenAI-compatible endpoint)
    MISTRAL_API_KEY         - Mistral key
    OPENROUTER_API_KEY      - OpenRouter key
    TRINITY_TIMEOUT_MS      - Optional: per-agent timeout (default: 60000)
    TRINITY_STAGGER_SECONDS - Optional: delay between parallel starts (default: 0.5)
    TRINITY_EXECUTION_MODE  - Optional: parallel, sequential or hybrid (default: parallel)
    LOG_LEVEL               - Optional: log level (default: INFO)
    API_HOST / API_PORT     - Optional: bind address (default: 0.0.0.0:8000)

Create a .env file in this directory with:

    OPENAI_API_KEY=sk-your-key-here
    ANTHROPIC_API_KEY=sk-ant-your-key-here
    TRINITY_EXECUTION_MODE=hybrid
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class Config:
    """Application configuration."""

    # Provider keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    mistral_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None

    # Execution defaults
    timeout_ms: int = 60000
    stagger_seconds: float = 0.5
    execution_mode: str = "parallel"

    log_level: str = "INFO"

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            google_api_key=os.getenv("GOOGLE_API_KEY"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY"),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            timeout_ms=int(os.getenv("TRINITY_TIMEOUT_MS", "60000")),
            stagger_seconds=float(os.getenv("TRINITY_STAGGER_SECONDS", "0.5")),
            execution_mode=os.getenv("TRINITY_EXECUTION_MODE", "parallel"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
        )

    def provider_keys(self) -> Dict[str, Optional[str]]:
        """Provider name -> API key, as expected by the credential resolvers."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
            "mistral": self.mistral_api_key,
            "openrouter": self.openrouter_api_key,
        }

    def validate(self) -> bool:
        """Check that at least one provider key is present."""
        return any(self.provider_keys().values())

    def configured_providers(self):
        return [provider for provider, key in self.provider_keys().items() if key]


# Global config instance
config = Config.from_env()
