"""
Configuration for Guardian Link.

All values come from environment variables with defaults that match the
behaviour of the mobile client. Components take these as constructor
defaults so tests can override them without touching the environment.
"""

import os

# Session tokens
JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"

# bcrypt work factor (number of rounds)
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Registration
REGISTRATION_TTL_MS = int(os.getenv("REGISTRATION_TTL_MS", "60000"))
CHILD_CONTACT_PATTERN = os.getenv("CHILD_CONTACT_PATTERN", r"^08\d{8,12}$")
CHILD_USERNAME_PREFIX = os.getenv("CHILD_USERNAME_PREFIX", "kids_")
OPERATOR_CONTACT = os.getenv("OPERATOR_CONTACT", "6287744100119")

# Location
LOCATION_STALE_MS = int(os.getenv("LOCATION_STALE_MS", "60000"))
GPS_TIMEOUT_MS = int(os.getenv("GPS_TIMEOUT_MS", "20000"))
GPS_MAX_FIX_AGE_MS = int(os.getenv("GPS_MAX_FIX_AGE_MS", "5000"))
GPS_SERIAL_PORT = os.getenv("GPS_SERIAL_PORT", "/dev/serial0")
GPS_SERIAL_BAUDRATE = int(os.getenv("GPS_SERIAL_BAUDRATE", "9600"))

# Commands
COMMAND_FRESHNESS_MS = int(os.getenv("COMMAND_FRESHNESS_MS", "30000"))
COMMAND_CLOCK_SKEW_MS = int(os.getenv("COMMAND_CLOCK_SKEW_MS", "5000"))

# Activity log ring buffer
LOG_LIMIT = int(os.getenv("LOG_LIMIT", "20"))

# Presence / status polling
BATTERY_POLL_SECONDS = float(os.getenv("BATTERY_POLL_SECONDS", "60"))
SOS_ALERT_INTERVAL_SECONDS = float(os.getenv("SOS_ALERT_INTERVAL_SECONDS", "1.2"))

# Beacon (BLE bracelet)
BEACON_NAME_PREFIX = os.getenv("BEACON_NAME_PREFIX", "")
BEACON_SCAN_TIMEOUT = float(os.getenv("BEACON_SCAN_TIMEOUT", "10"))
# HM-10 style serial characteristic
BEACON_CHAR_UUID = os.getenv("BEACON_CHAR_UUID", "0000ffe1-0000-1000-8000-00805f9b34fb")

# Store gateway
GATEWAY_URL = os.getenv("GATEWAY_URL", "http://localhost:8080")
GATEWAY_HOST = os.getenv("GATEWAY_HOST", "0.0.0.0")
GATEWAY_PORT = int(os.getenv("GATEWAY_PORT", "8080"))
GATEWAY_KEEPALIVE_SECONDS = float(os.getenv("GATEWAY_KEEPALIVE_SECONDS", "15"))
GATEWAY_RECONNECT_SECONDS = float(os.getenv("GATEWAY_RECONNECT_SECONDS", "3"))
WRITE_RATE_LIMIT = int(os.getenv("WRITE_RATE_LIMIT", "120"))
CONNECT_RATE_LIMIT = int(os.getenv("CONNECT_RATE_LIMIT", "10"))

# Firebase Realtime Database (alternative store backend)
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL", "")
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH", "")

# Push notifications
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")

# Safety analysis
ANALYSIS_PROVIDERS = os.getenv("ANALYSIS_PROVIDERS", "claude,gemini")
ANALYSIS_DAILY_LIMIT = int(os.getenv("ANALYSIS_DAILY_LIMIT", "10"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
