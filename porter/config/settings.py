"""
Configuration management for Porter
"""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class Settings:
    """Application settings"""

    # API Keys
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    ELEVENLABS_API_KEY: str = os.getenv('ELEVENLABS_API_KEY', '')

    # Provider endpoints
    OPENAI_BASE_URL: str = os.getenv('OPENAI_BASE_URL', '')
    ELEVENLABS_BASE_URL: str = os.getenv('ELEVENLABS_BASE_URL', 'https://api.elevenlabs.io/v1')

    # Runtime
    ENVIRONMENT: str = os.getenv('ENVIRONMENT', 'production')

    # LLM Configuration
    DEFAULT_MODEL: str = os.getenv('PORTER_MODEL', 'gpt-4o')
    DEFAULT_TEMPERATURE: float = 0.7
    READER_MAX_TOKENS: int = 1500
    ANALYZER_MAX_TOKENS: int = 1200
    CONSOLIDATOR_MAX_TOKENS: int = 1200
    STREAMING_MAX_TOKENS: int = 600
    GATEWAY_TIMEOUT: float = float(os.getenv('GATEWAY_TIMEOUT', '30'))  # seconds

    # Response policy
    MAX_RESPONSE_WORDS: int = 150

    # Speech
    SYNTHESIS_MODEL: str = 'eleven_multilingual_v2'
    SYNTHESIS_TIMEOUT: float = float(os.getenv('SYNTHESIS_TIMEOUT', '30'))  # seconds
    SYNTHESIS_CONCURRENCY: int = 3
    STOP_GUARD_DELAY: float = 0.1  # seconds
    TRANSCRIPTION_MODEL: str = 'whisper-1'

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls):
        """Validate required settings"""
        errors = []

        if not cls.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY not set in .env")

        if not cls.ELEVENLABS_API_KEY:
            errors.append("ELEVENLABS_API_KEY not set in .env")

        if cls.SYNTHESIS_CONCURRENCY < 1:
            errors.append("SYNTHESIS_CONCURRENCY must be >= 1")

        if errors:
            raise ValueError("Configuration errors:\n" + "\n".join(errors))

        return True

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT.lower() == 'development'


def configure_logging(level: str = None):
    """Apply LOG_LEVEL to the root logger"""
    logging.basicConfig(
        level=(level or Settings.LOG_LEVEL).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Singleton instance
settings = Settings()
