from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./walkscout.db"
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    ors_url: str = "https://api.openrouteservice.org/v2/directions/foot-walking"
    ors_api_key: str = ""
    dataset_base_url: str = "http://localhost:8000/data"
    user_agent: str = "walkscout/1.0"

    nominatim_min_interval_s: float = 1.0
    overpass_min_interval_s: float = 1.0
    route_fetch_delay_s: float = 1.0

    max_walking_distance_km: float = 2.5
    max_results_per_category: int = 10
    supermarket_radius_m: int = 2000

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_prefix": "WALKSCOUT_"}


settings = Settings()
