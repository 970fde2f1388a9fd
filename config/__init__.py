from .settings  import Settings
from .arguments import ForwardConfig, ServerConfig, build_parser, parse_port

__all__ = ["Settings", "ForwardConfig", "ServerConfig",
           "build_parser", "parse_port"]
