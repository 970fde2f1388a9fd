from .random_gen  import SecureRandom
from .key_manager import KeyManager, Credentials
from .framing     import Framing, MessageType

__all__ = ["SecureRandom", "KeyManager", "Credentials",
           "Framing", "MessageType"]
