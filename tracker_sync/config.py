"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Remote tracker
    gitlab_url: str = "https://gitlab.com"
    gitlab_token: str | None = None
    project_id: str = ""

    # Session
    # One of: bugReporting, bugTrimming, teamResponse, testerResponse, moderation
    phase: str = "bugReporting"
    user_login: str = ""
    # One of: Student, Tutor, Admin
    user_role: str = "Student"
    # Composite team id of the current student, e.g. "CS2103T-W12-3"
    user_team: str | None = None
    # Comma-separated composite team ids allocated to a tutor/admin.
    allocated_teams: str | None = None
    # JSON file mapping composite team id -> list of member usernames.
    teams_file: str | None = None
    session_id: str | None = None
    client_type: str = "Desktop"
    app_version: str = "1.0.0"

    # Timing
    poll_interval_ms: int = 5000
    undo_window_ms: int = 3000

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
