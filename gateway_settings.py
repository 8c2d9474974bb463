import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from xml_gateway import TlsConfig

load_dotenv(os.getenv("GATEWAY_ENV_FILE", "Config.env"))

DEFAULT_PORT = 8080
# Health endpoints answer 400 unless HEALTHCHECK_STATUS says otherwise
DEFAULT_HEALTHCHECK_STATUS = 400


class Settings(BaseModel):
    port: int = DEFAULT_PORT
    api_url: Optional[str] = None
    server_certificate: Optional[str] = None
    server_private_key: Optional[str] = None
    server_ca_certificate: Optional[str] = None
    debug: bool = False
    log_level: str = "INFO"
    healthcheck_status: int = DEFAULT_HEALTHCHECK_STATUS

    @property
    def tls(self) -> TlsConfig:
        return TlsConfig(
            cert_path=self.server_certificate,
            key_path=self.server_private_key,
            ca_path=self.server_ca_certificate,
        )


def load_settings() -> Settings:
    debug = os.getenv("DEBUG", "false").lower() == "true"
    return Settings(
        port=os.getenv("PORT", DEFAULT_PORT),
        api_url=os.getenv("APIURL"),
        server_certificate=os.getenv("SERVERCERTIFICATE"),
        server_private_key=os.getenv("SERVERPRIVATEKEY"),
        server_ca_certificate=os.getenv("SERVERCRTCERTIFICATE"),
        debug=debug,
        log_level=os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO"),
        healthcheck_status=os.getenv("HEALTHCHECK_STATUS", DEFAULT_HEALTHCHECK_STATUS),
    )
