import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Campus Library")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./library.db")
    seed_sample_data: bool = _flag("SEED_SAMPLE_DATA", "True")

    # Borrowing rules
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "30"))
    fine_per_day: int = int(os.getenv("FINE_PER_DAY", "1"))  # one currency unit

    # Accounts
    university_email_domain: str = os.getenv("UNIVERSITY_EMAIL_DOMAIN", "@srmap.edu.in")


settings = Settings()
