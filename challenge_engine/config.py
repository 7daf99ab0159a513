from dotenv import load_dotenv
import os

# Load environment variables from a .env file
load_dotenv()

# Database used for both the challenge store and the SQL ledger
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./challenges.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

# Upper bound on a single ledger query issued by the HTTP layer, 0 disables it
LEDGER_TIMEOUT_SECONDS = float(os.getenv("LEDGER_TIMEOUT_SECONDS", 5))
# Worker threads shared by all timed ledger queries in the process
LEDGER_MAX_WORKERS = int(os.getenv("LEDGER_MAX_WORKERS", 4))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
