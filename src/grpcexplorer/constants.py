import os


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


LOGGER_NAME = "grpcexplorer"
LOG_FILE = os.environ.get("GRPCEXPLORER_LOG_FILE", "error.log")
LOG_TO_CONSOLE = _env_bool("GRPCEXPLORER_LOG_TO_CONSOLE", False)

# Timeouts (milliseconds unless suffixed _S)
DEFAULT_TIMEOUT_MS = _env_int("GRPCEXPLORER_TIMEOUT_MS", 10000)
REFLECTION_TIMEOUT_MS = _env_int("GRPCEXPLORER_REFLECTION_TIMEOUT_MS", 15000)
NEGOTIATION_TIMEOUT_S = _env_int("GRPCEXPLORER_NEGOTIATION_TIMEOUT_S", 5)
OPTIMIZED_TIMEOUT_MS = _env_int("GRPCEXPLORER_OPTIMIZED_TIMEOUT_MS", 10000)
VALIDATE_TIMEOUT_MS = _env_int("GRPCEXPLORER_VALIDATE_TIMEOUT_MS", 1000)

DISCOVERY_BATCH_SIZE = _env_int("GRPCEXPLORER_BATCH_SIZE", 5)
MAX_RECURSION_DEPTH = _env_int("GRPCEXPLORER_MAX_RECURSION_DEPTH", 50)
MAX_DESCRIBE_FETCHES = _env_int("GRPCEXPLORER_MAX_DESCRIBE_FETCHES", 20)
OPTIMIZED_MERGE_STANDARD = _env_bool("GRPCEXPLORER_OPTIMIZED_MERGE_STANDARD", False)

DEFAULT_TLS_PORT = 443
DEFAULT_PLAINTEXT_PORT = 9090

CHANNEL_OPTIONS = [
    ("grpc.max_receive_message_length", -1),
    ("grpc.max_send_message_length", -1),
]

REFLECTION_SERVICE_PREFIX = "grpc.reflection."
COSMOS_REFLECTION_SERVICE = "cosmos.base.reflection.v2alpha1.ReflectionService"
COSMOS_TX_SERVICE = "cosmos.tx.v1beta1.Transactions"

