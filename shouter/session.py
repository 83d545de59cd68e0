from common.config import ShoutConfig
from common.messages import ChatMessage, encode
from shouter.channel import MulticastChannel
from shouter.receiver import ReceiveLoop


class Session:
    def __init__(self, channel: MulticastChannel, nickname: str):
        self.channel = channel
        self.nickname = nickname

    @classmethod
    def open(cls, config: ShoutConfig):
        channel = MulticastChannel.open(
            config.address,
            config.interface,
            loopback=config.loopback,
        )
        return cls(channel, config.nickname)

    @property
    def endpoint(self):
        return self.channel.endpoint

    def send(self, text: str):
        # encode() raises TooLarge before anything hits the network
        data = encode(ChatMessage(self.nickname, text))
        self.channel.send(data)

    def receive(self) -> ReceiveLoop:
        return ReceiveLoop(self.channel, node_id=self.nickname)

    def close(self):
        self.channel.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
