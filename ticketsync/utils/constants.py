from dotenv import load_dotenv
import os

load_dotenv()

# Table names
PROFILES_TABLE = "profiles"
TICKETS_TABLE = "tickets"
MESSAGES_TABLE = "messages"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self) -> None:
        # Supabase project (anon key: every query runs under the viewer's RLS policies)
        self.SUPABASE_URL = os.getenv('SUPABASE_URL')
        self.SUPABASE_KEY = os.getenv('SUPABASE_KEY') or os.getenv('SUPABASE_ANON_KEY')
        self.SCHEMA = os.getenv('TICKETSYNC_SCHEMA', 'public')

        # Background sender resolution for held messages
        self.SENDER_RESOLVE_RETRIES = int(os.getenv('TICKETSYNC_SENDER_RESOLVE_RETRIES', '3'))
        self.SENDER_RESOLVE_BACKOFF = float(os.getenv('TICKETSYNC_SENDER_RESOLVE_BACKOFF', '2.0'))

        # Staff opening an unassigned ticket claims it
        self.AUTO_CLAIM = _env_bool('TICKETSYNC_AUTO_CLAIM', True)

        self.LOG_LEVEL = os.getenv('TICKETSYNC_LOG_LEVEL', 'INFO').upper()

    def get(self, key: str, default=None):
        """Get setting value with optional default (dict-like access)."""
        return getattr(self, key, default)

    def validate(self) -> None:
        """Validate that the Supabase connection settings are present."""
        required = ['SUPABASE_URL', 'SUPABASE_KEY']

        missing = [name for name in required if not getattr(self, name)]

        if missing:
            raise EnvironmentError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
