from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from pathlib import Path

# Get the directory where config.py is located
BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding='utf-8',
        extra='ignore'
    )

    database_url: str
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    bcrypt_rounds: int = 12
    admin_email: str = "admin@lms.org"
    admin_password: str
    log_level: str = "INFO"
    sql_echo: bool = False

settings = Settings()
