import grpc
from typing import Dict, Any
import logging
from grpcexplorer import constants
from grpcexplorer.errors import ExplorerError, TransportError


class helper:

    def __init__(self, log_to_console=constants.LOG_TO_CONSOLE):
        log_file = constants.LOG_FILE
        self.logger = logging.getLogger(constants.LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)

        # Prevent adding duplicate handlers
        if not self.logger.handlers:
            formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

            if log_file:
                file_handler = logging.FileHandler(log_file)
                file_handler.setFormatter(formatter)
                self.logger.addHandler(file_handler)

            if log_to_console:
                console_handler = logging.StreamHandler()
                console_handler.setFormatter(formatter)
                self.logger.addHandler(console_handler)

            if not self.logger.handlers:
                self.logger.addHandler(logging.NullHandler())

    def log(self, function_name: str, args=None, kwargs=None, output=None, exception: Exception = None):
        args = args or []
        kwargs = kwargs or {}

        self.logger.info(f"Function: {function_name}")

        if (args):
            self.logger.debug(f"Input args: {args}")
        if (kwargs):
            self.logger.debug(f"Input kwargs: {kwargs}")

        if output is not None:
            self.logger.debug(f"Output: {output}")

        if exception is not None:
            self.logger.error(f"Exception in function '{function_name}': {str(exception)}",
                              exc_info=(type(exception), exception, exception.__traceback__))
        self.logger.info(f"----------------------------------------------------------------------------------------------------:end")

    def exception_to_serializable(self, error: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:

        def make_serializable(obj):
            """Recursively converts objects to JSON-friendly formats"""
            if obj is None or isinstance(obj, (str, int, float, bool)):
                return obj
            if isinstance(obj, (list, tuple, set, frozenset)):
                return [make_serializable(x) for x in obj]
            if isinstance(obj, dict):
                return {str(k): make_serializable(v) for k, v in obj.items()}
            if isinstance(obj, (bytes, bytearray)):
                return obj.decode('utf-8', errors='replace')
            if hasattr(obj, '__dict__'):
                return make_serializable(vars(obj))
            return str(obj)

        # Base structure
        result = {
            "success": False,
            "error": {
                "type": error.__class__.__name__,
                "message": str(error),
                "details": {}
            }
        }

        # Add context if provided
        if context:
            result["context"] = make_serializable(context)

        if isinstance(error, TransportError):
            result["error"].update({
                "subtype": "transport_error",
                "code": error.code,
                "kind": error.kind,
            })
        elif isinstance(error, ExplorerError):
            result["error"]["subtype"] = "explorer_error"
        elif isinstance(error, grpc.RpcError) and callable(getattr(error, 'code', None)):
            code = error.code()
            result["error"].update({
                "subtype": "grpc_error",
                "code": getattr(code, 'name', None),
                "code_value": getattr(code, 'value', [None])[0],
                "details": error.details() if callable(getattr(error, 'details', None)) else None,
            })

        # Capture all public attributes
        if isinstance(result["error"]["details"], dict):
            for attr in dir(error):
                if attr.startswith('_') or attr in ('args', 'code', 'kind'):
                    continue
                try:
                    val = getattr(error, attr)
                except AttributeError:
                    continue
                if not callable(val):
                    result["error"]["details"][attr] = make_serializable(val)

        return make_serializable(result)
