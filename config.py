import os

from dotenv import load_dotenv

load_dotenv()

# Backend that serves equipment.yaml, the Strava proxy and the LLM stages
SWOLEGEN_API_BASE = os.getenv('SWOLEGEN_API_BASE', 'http://localhost:8080').rstrip('/')
OAUTH_PROVIDER = os.getenv('OAUTH_PROVIDER', 'strava')

SESSION_DB = os.getenv('SESSION_DB', 'session.db')
FLASK_SECRET_KEY = os.getenv('FLASK_SECRET_KEY', 'your-secret-key-here')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Sent to /llm/analyze when the form leaves the references blank
DEMO_INSTRUCTIONS_URL = os.getenv(
    'DEMO_INSTRUCTIONS_URL', 'https://example.com/swolegen/demo/instructions.md'
)
DEMO_HISTORY_URL = os.getenv(
    'DEMO_HISTORY_URL', 'https://example.com/swolegen/demo/history.csv'
)

DEFAULT_DAYS = 7
DEFAULT_DURATION_MINUTES = 45
DEFAULT_UNITS = 'lbs'
DEFAULT_LOCATION = 'home'
