"""Runtime settings for the Group Orders domain, read from the environment.

Protean's own configuration (providers, brokers, event processing) follows
``PROTEAN_ENV``; the values here cover adapter selection and the knobs the
domain code reads directly.
"""

import os
from dataclasses import dataclass, field


def _env(key: str, default: str) -> str:
    return os.environ.get(key, default)


@dataclass(frozen=True)
class Settings:
    environment: str = field(default_factory=lambda: _env("PROTEAN_ENV", "development"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: _env("LOG_FORMAT", "console"))
    payment_gateway_adapter: str = field(default_factory=lambda: _env("PAYMENT_GATEWAY_ADAPTER", "fake"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
