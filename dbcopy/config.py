import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv() # read .env into environment

class Config:
    """dbcopy configuration from environment variables"""

    def __init__(self):
        # database
        self.DB_DRIVER: str = os.getenv('DB_DRIVER', 'sqlite')
        self.DB_PATH: Optional[str] = os.getenv('DB_PATH') or None
        self.DB_HOST: str = os.getenv('DB_HOST', '')
        self.DB_NAME: str = os.getenv('DB_NAME', '')
        self.DB_USER: str = os.getenv('DB_USER', '')
        self.DB_PASSWORD: str = os.getenv('DB_PASSWORD', '')
        self.DB_PORT: int = int(os.getenv('DB_PORT', '5432'))
        self.DB_TIMEOUT: int = int(os.getenv('DB_TIMEOUT', '300'))

        # settings.yml environment
        self.DYNACONF_ENV: str = os.getenv("DYNACONF_ENV", "default")

# shared instance
settings = Config()
