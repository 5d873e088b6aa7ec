"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from roast_scope.domain.enums import EtFallback


class Settings(BaseSettings):
    app_name: str = "roast-scope"
    debug: bool = False
    log_level: str = "INFO"
    temp_unit: str = "C"

    # Sampling
    sample_interval_seconds: float = 1.0
    drop_undo_grace_seconds: float = 5.0

    # Rate of rise
    ror_window_seconds: float = 60.0
    ror_min_points: int = 5
    ror_min_span_seconds: float = 10.0
    ror_min: float = -50.0
    ror_max: float = 100.0
    ror_flat_threshold: float = 0.1

    # Device lines
    poll_interval_seconds: float = 1.0
    single_channel_et: EtFallback = EtFallback.ZERO

    # Import
    import_sampling_interval: float = 3.0

    # Serial
    serial_port: str | None = None
    serial_baudrate: int = 115200

    # Bluetooth LE (Nordic UART service)
    ble_service_uuid: str = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
    ble_tx_uuid: str = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
    ble_rx_uuid: str = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"
    ble_device_name: str | None = None

    # WebSocket
    websocket_url: str | None = None

    # Simulator
    simulator_start_bt: float = 150.0
    simulator_start_et: float = 200.0
    simulator_target_et: float = 240.0

    model_config = {"env_prefix": "ROAST_"}


settings = Settings()
