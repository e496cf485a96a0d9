from pathlib import Path
from typing import Optional
import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Load env
backend_dir = Path(__file__).parent.parent.parent
load_dotenv(backend_dir / '.env')

class AppSettings(BaseModel):
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*" # Comma separated

    # Engine YAML (optional; defaults reproduce the dashboard)
    optical_path_config: Optional[Path] = None
    max_path_count: int = 50

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @classmethod
    def load(cls) -> "AppSettings":
        config_path = os.getenv("OPTICAL_PATH_CONFIG")
        return cls(
            app_env=os.getenv("APP_ENV", "development"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*"),
            optical_path_config=Path(config_path) if config_path else None,
            max_path_count=int(os.getenv("MAX_PATH_COUNT", "50")),
        )

settings = AppSettings.load()
