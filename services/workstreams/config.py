"""
Workstreams configuration
Read from the environment once at import time
"""

import os

OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
EMBED_MODEL = os.getenv("EMBED_MODEL", "qwen3-embedding:8b")
NAMING_MODEL = os.getenv("NAMING_MODEL", "llama3.2:3b")
NAMING_TIMEOUT = float(os.getenv("NAMING_TIMEOUT", "120"))
# Parallel naming requests during a full reclustering
NAMING_CONCURRENCY = int(os.getenv("NAMING_CONCURRENCY", "4"))

ARANGODB_HOST = os.getenv("ARANGODB_HOST", "localhost")
ARANGODB_PORT = int(os.getenv("ARANGODB_PORT", "8529"))
ARANGODB_DB = os.getenv("ARANGODB_DB", "workstreams")
ARANGODB_USER = os.getenv("ARANGODB_USER", "root")
ARANGODB_PASSWORD = os.getenv("ARANGODB_PASSWORD", "")

# Sweep leftover outliers into the new workstreams after a full run
ASSIGN_OUTLIERS = os.getenv("WORKSTREAMS_ASSIGN_OUTLIERS", "true").lower() in ("1", "true", "yes")
