from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "HomeHub Apps"
    timezone: str = "America/New_York"

    # Location (sunrise/sunset windows)
    latitude: float = 40.7128
    longitude: float = -74.0060

    # Location mode the hub starts in
    initial_mode: str = "Home"

    # Storage
    sqlite_path: str = Field(default="homehub.db")
    log_file: str = "homehub.log"

    # Devices and app instances
    apps_file: str = ""  # empty = bundled config/default_apps.json

    # Mode: "sim" for development; "real" talks to Sonoff relays
    mode: str = Field(default="sim")

    # Climate sensor: "sim" or "rs485"
    sensor_mode: str = "sim"
    climate_sample_seconds: int = 60

    # RS485 / Modbus RTU
    rs485_port: str = "/dev/ttyUSB0"      # Windows example: "COM3"
    rs485_baudrate: int = 9600
    rs485_slave_id: int = 1

    # Temperature/humidity register definition (XY-MD02 style)
    climate_functioncode: int = 4         # 3=holding, 4=input
    climate_register_address: int = 1     # temperature, humidity follows
    climate_scale: float = 0.1
    climate_fahrenheit: bool = True

    # Pi-hole
    pihole_enabled: bool = False
    pihole_api_version: int = 6           # 5 = token in query, 6 = session auth
    pihole_ip: str = ""
    pihole_port: int = 80
    pihole_password: str = ""             # v6
    pihole_api_token: str = ""            # v5
    pihole_disable_minutes: int = 0       # 0 = disable indefinitely
    pihole_timeout_seconds: float = 5.0
    pihole_auth_retry_base_seconds: float = 3.0
    pihole_auth_retry_max_seconds: float = 60.0
    pihole_auth_max_attempts: int = 5
    pihole_debug: bool = False

    # Sonoff relays (real mode)
    sonoff_port: int = 8081
    sonoff_timeout_seconds: float = 5.0


settings = Settings()
