class ShoutError(Exception):
    pass


# Startup: bad address / unknown interface. Fatal.
class ConfigError(ShoutError):
    pass


class ResolveError(ConfigError):
    pass


class InterfaceNotFound(ConfigError):
    pass


# Socket setup or group join failed. Fatal.
class JoinError(ShoutError):
    pass


class TooLarge(ShoutError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"message too long ({size}, must be <={limit})")
        self.size = size
        self.limit = limit


# Undecodable datagram; dropped by the receive loop.
class Malformed(ShoutError):
    pass
