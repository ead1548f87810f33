"""
Email platform integration layer.

Mirrors campaigns, audience lists and metrics from the agency's email
marketing platforms into the local store, and verifies the stored
platform credentials on a schedule.
"""

from dotenv import load_dotenv

# Load .env file if it exists (important for local development)
load_dotenv()

__version__ = "1.0.0"
