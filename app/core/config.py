from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "TTN Uplink Emulator"

    # Emulation
    default_interval_seconds: float = 30.0
    max_logs: int = 100
    autostart: bool = False

    # Dispatch mode: "sim" formats locally, "api" posts to the simulate
    # endpoint, "ttn" posts straight to the TTN webhook
    dispatch_mode: str = Field(default="sim")
    dispatch_timeout_seconds: float = 10.0
    dispatch_retries: int = 1

    # Simulate endpoint (dispatch_mode="api")
    api_base_url: str = "http://localhost:8787"
    api_auth_header: str = ""

    # The Things Network (dispatch_mode="ttn")
    ttn_app_id: str = ""
    ttn_api_key: str = ""
    ttn_webhook_url: str = ""
    ttn_region: str = "eu1"
    ttn_webhook_id: str = "emulator"

    # Synthetic radio metadata
    uplink_f_port: int = 1
    uplink_rssi: float = -60.0
    uplink_snr: float = 9.5
    uplink_frequency: str = "868.1"
    uplink_spreading_factor: int = 7
    uplink_bandwidth: int = 125000

    # Sim dispatcher
    sim_failure_rate: float = 0.0  # e.g. 0.05 to fail 5% of uplinks
    sim_history: int = 50

    log_path: str = Field(default="emulator.log")


settings = Settings()
