from __future__ import annotations
import os

STATE_DIR = os.environ.get("SHIPYARD_STATE_DIR", ".shipyard")
DOCKER_BIN = os.environ.get("SHIPYARD_DOCKER", "docker")
BUILD_FILE = os.environ.get("SHIPYARD_BUILD_FILE", "shipyard_build.py")
OUTPUT_TAIL = int(os.environ.get("SHIPYARD_OUTPUT_TAIL", "4000"))
HISTORY_DB = os.environ.get("SHIPYARD_HISTORY_DB", "history.db")
