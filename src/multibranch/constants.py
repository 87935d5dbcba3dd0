"""Project-wide constants for multi-branch sync."""

CONFIG_FILE_NAME = "config.yaml"
TEMPLATE_DIR_NAME = "template"
BRANCHES_DIR_NAME = "branches"
BUILDS_DIR_NAME = "builds"
BUILD_FILE_NAME = "build.yaml"

TEMPLATE_NAME = "template"
DEFAULT_SYNC_SPEC = "H/5 * * * *"
DEFAULT_VIEW_NAME = "All"
DEFAULT_VIEW_REGEX = ".*"

NAME_ESCAPE_MARKER = "_PERCENT_"
NEW_BRANCH_CAUSE = "New branch detected."
