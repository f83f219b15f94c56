"""Configuration management using Pydantic settings."""

from typing import Optional

from pydantic_settings import BaseSettings


# Root of the Task Scheduler namespace. Tasks registered without an explicit
# folder live here.
ROOT_TASK_PATH = "\\"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application settings
    app_name: str = "Scheduled Tasks Manager"
    debug: bool = False

    # WinRM connection settings
    winrm_port: int = 5985
    winrm_auth: str = "negotiate"  # negotiate, kerberos, ntlm, credssp or basic
    winrm_operation_timeout: float = 20.0  # seconds to wait for WinRM calls
    winrm_connection_timeout: float = 30.0  # network connect timeout in seconds
    winrm_read_timeout: float = 30.0  # HTTP read timeout in seconds
    winrm_cert_validation: bool = True
    winrm_kerberos_principal: Optional[str] = None  # Used when no credential is supplied

    # Local execution settings
    local_powershell_executable: str = "powershell.exe"
    local_command_timeout: float = 120.0  # seconds before a local invocation is abandoned

    # Task defaults
    default_task_path: str = ROOT_TASK_PATH
    confirm_preference: str = "High"  # Low, Medium, High or None

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def winrm_use_ssl(self) -> bool:
        """Return True when the configured port is the WinRM HTTPS listener."""
        return self.winrm_port == 5986


settings = Settings()
