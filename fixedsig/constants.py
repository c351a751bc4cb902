"""
fixedsig constants

Protocol parameters, store layout and the environment-backed node/logging
settings. Environment values are read once at import: a process environment
variable wins over ``.env``, which wins over the built-in default.
"""
import os
from decimal import Decimal
from dotenv import dotenv_values

# ==================================================================================
# CORE
# ==================================================================================
NODE_VERSION = '1.0.0'

# Seconds per block height when the node derives heights from wall-clock time
BLOCK_TIME = 5


# ==================================================================================
# MULTISIG
# ==================================================================================
DEFAULT_QUERY_LIMIT = 10
MAX_QUERY_LIMIT = 30

# ThresholdQuorum: threshold in [MIN_THRESHOLD_PERCENTAGE, 1], quorum in (0, 1]
MIN_THRESHOLD_PERCENTAGE = Decimal('0.5')
MAX_PERCENTAGE = Decimal('1')

VOTE_YES = 'yes'
VOTE_NO = 'no'
VOTE_ABSTAIN = 'abstain'
VOTE_VETO = 'veto'

KEY_CONFIG = 'config'
KEY_CLOCK = 'clock'
KEY_PROPOSAL_COUNT = 'proposal_count'
PREFIX_PROPOSALS = 'proposals/'
PREFIX_BALLOTS = 'ballots/'
PREFIX_VOTERS = 'voters/'
PREFIX_CONTRACTS = 'contracts/'

# Proposal ids are zero-padded in keys so lexical order == numeric order
PROPOSAL_ID_WIDTH = 20


# ==================================================================================
# ENVIRONMENT SETTINGS
# ==================================================================================
LOG_MAX_FILE_SIZE = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

ENV_DEFAULTS = {
    'FIXEDSIG_NODE_HOST':        '127.0.0.1',
    'FIXEDSIG_NODE_PORT':        '3017',
    'LOG_LEVEL':                 'INFO',
    'LOG_FORMAT':                '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':           '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':  'True',
    'LOG_FILE_OUTPUT':           'False',
}


class ConfigString(str):
    """A setting's effective text; ``default()`` gives the built-in value."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """A boolean setting (``"true"``/``"false"`` in any case) with its built-in value."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__

    def __repr__(self):
        return repr(bool(self))

    __str__ = __repr__


def _as_bool(text):
    """True/False for boolean literals, None for anything else."""
    lowered = str(text).strip().lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    return None


def _load_settings(defaults):
    dotenv = dotenv_values(".env")
    settings = {}
    for key, default in defaults.items():
        raw = os.environ.get(key, dotenv.get(key))
        text = default if raw is None else raw
        flag = _as_bool(text)
        if flag is not None and _as_bool(default) is not None:
            settings[key] = ConfigBool(flag, _as_bool(default))
        else:
            settings[key] = ConfigString(text, default)
    return settings


globals().update(_load_settings(ENV_DEFAULTS))
