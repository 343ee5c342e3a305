"""
This module contains the configuration settings for the Pebble site registry.
It defines paths, process settings, logging configuration and the template
used to render a new site's configuration file.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
HOME_DIR_NAME = ".pebble"
# Environment variable overriding the per-user root directory (defaults to ~/.pebble)
HOME_ENV_VAR = "PEBBLE_HOME"

#* --- File Names (relative to the Pebble home) ---
GLOBAL_CONFIG_FILE = "config.json"
REGISTRY_FILE = "registry.json"
REGISTRY_DIR_NAME = "registry"
LOGS_DIR_NAME = "logs"
LOG_DB_FILE = "pebble.log.db"

#* --- Site Layout (relative to a site directory) ---
SITE_CONFIG_FILE = "pebble.toml"
SITE_DATA_DIR = "data"
SITE_MEDIA_DIR = "media"
SITE_DB_FILE = "pebble.db"

#* --- Site Naming ---
SITE_NAME_MAX_LENGTH = 64

#* --- Content Server Executable ---
# The content server is launched once per site as a detached process.
SERVER_EXECUTABLE = os.getenv("PEBBLE_SERVER_EXECUTABLE", "pebble-server")

#* --- Bind Addresses ---
DEV_HOST = "127.0.0.1"     # 'serve' mode, loopback only
PROD_HOST = "0.0.0.0"      # 'deploy' mode, all interfaces
PORT_CHECK_HOST = "127.0.0.1"

#* --- Global Config Defaults ---
DEFAULT_LANGUAGE = "en"
DEFAULT_THEME = "default"
DEFAULT_POSTS_PER_PAGE = 10
DEFAULT_EXCERPT_LENGTH = 200
DEFAULT_DEV_PORT = 3000
DEFAULT_PROD_PORT = 8080
DEFAULT_AUTO_PORT_RANGE_START = 3001
DEFAULT_AUTO_PORT_RANGE_END = 3100

#* --- Logging ---
LOG_LEVEL = os.getenv("PEBBLE_LOG_LEVEL", "WARNING").upper()
LOG_TO_DB = os.getenv("PEBBLE_LOG_TO_DB", "True").lower() in ('true', '1', 't')
LOG_BUFFER_SIZE = 100
LOG_HISTORY_COUNT = 50

#* --- Configuration Templates ---
SITE_CONFIG_TEMPLATE = """\
[site]
title = "{title}"
description = "A Pebble site: {name}"
url = "http://localhost:{port}"
language = "{language}"

[server]
host = "{host}"
port = {port}

[database]
path = "./{data_dir}/{db_file}"

[content]
posts_per_page = {posts_per_page}
excerpt_length = {excerpt_length}
auto_excerpt = true

[media]
upload_dir = "./{data_dir}/{media_dir}"
max_upload_size = "10MB"

[theme]
name = "{theme}"

[auth]
session_lifetime = "7d"
"""
