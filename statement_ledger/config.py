"""Configuration management for Statement Ledger."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Configuration
    llm_provider: Literal["gemini", "openai", "ollama"] = "gemini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-pro"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2-vision"

    # Sampling: OCR and structuring are deterministic, chat is slightly creative
    ocr_temperature: float = 0.0
    extraction_temperature: float = 0.0
    chat_temperature: float = 0.1

    # LLM call limits
    llm_timeout: float = 600.0
    llm_max_retries: int = 3
    llm_max_tokens: int = 16384

    # Document extraction
    pdf_render_resolution: int = 300  # DPI for page rasterization
    max_upload_mb: int = 25

    # Simulated progress indicator
    progress_tick_seconds: float = 0.3
    progress_step_max: float = 5.0
    progress_ceiling: float = 95.0
    progress_reset_seconds: float = 0.5

    # Development mode
    dev_mode: bool = True
    log_level: str = "INFO"

    # Data directory
    data_dir: Path = Path.home() / ".statement_ledger"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # LLM_PROVIDER and llm_provider both work
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def state_db_path(self) -> Path:
        """Get the SQLite path for persisted session state."""
        suffix = "dev" if self.dev_mode else "prod"
        return self.data_dir / f"session_{suffix}.db"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def log_config(self) -> None:
        """Log current configuration with sensitive values redacted."""
        import os

        def _redact(key: str) -> str:
            if not key:
                return "✗ Not set"
            return f"✓ Set ({key[:6]}...{key[-4:]})"

        print("\n" + "=" * 60)
        print("📋 CONFIGURATION LOADED")
        print("=" * 60)

        env_file_path = os.path.join(os.getcwd(), ".env")
        print(f"Working Directory:   {os.getcwd()}")
        print(f".env file exists:    {os.path.exists(env_file_path)}")

        env_llm_provider = os.getenv("LLM_PROVIDER")
        if env_llm_provider:
            print(f"⚠️  ENV VAR override:   LLM_PROVIDER={env_llm_provider}")
        print("-" * 60)

        print(f"LLM Provider:        {self.llm_provider}")
        print(f"Gemini API Key:      {_redact(self.gemini_api_key)}")
        print(f"Gemini Model:        {self.gemini_model}")
        print(f"OpenAI API Key:      {_redact(self.openai_api_key)}")
        print(f"OpenAI Model:        {self.openai_model}")
        print(f"Ollama Host:         {self.ollama_host}")
        print(f"Ollama Model:        {self.ollama_model}")
        print(
            f"Temperatures:        ocr={self.ocr_temperature} "
            f"extract={self.extraction_temperature} chat={self.chat_temperature}"
        )
        print(f"PDF Render DPI:      {self.pdf_render_resolution}")
        print(f"Dev Mode:            {self.dev_mode}")
        print(f"Data Directory:      {self.data_dir}")
        print(f"Session Database:    {self.state_db_path}")
        print(f"API Host:            {self.api_host}:{self.api_port}")
        print("=" * 60 + "\n")


# Global settings instance
settings = Settings()
