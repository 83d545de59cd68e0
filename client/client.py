import argparse
import sys
import threading

from common.config import DEFAULT_ADDRESS, ShoutConfig, default_nickname
from common.errors import ShoutError, TooLarge
from common.log import chat, log, set_output
from shouter.receiver import drain
from shouter.session import Session
from shouter.terminal import InsertWriter, sanitize


class Client:
    def __init__(self, config: ShoutConfig, stdin=None, stdout=None):
        self.config = config
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.out = InsertWriter(self.stdout)
        self.session = None
        self.loop = None

    @property
    def nick(self):
        return self.config.nickname

    def start(self):
        self.session = Session.open(self.config)
        log(
            "client",
            self.nick,
            "LISTENING",
            addr=str(self.session.endpoint),
            iface=self.config.interface,
        )

        # from here on every diagnostic goes above the prompt
        set_output(self.out)

        self.loop = self.session.receive()
        threading.Thread(target=self.display, name="display", daemon=True).start()

        try:
            self.read_input()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def display(self):
        drain(self.loop, self.on_line, self.on_error)

    def on_line(self, line: str):
        chat(sanitize(line))

    def on_error(self, err: Exception):
        log("client", self.nick, "RECV_ERROR", level="ERROR", error=err)

    def read_input(self):
        while True:
            self.stdout.write(f"<{self.nick}> ")
            self.stdout.flush()

            line = self.stdin.readline()
            if not line:
                return
            text = line.rstrip("\r\n")

            try:
                self.session.send(text)
            except (TooLarge, OSError) as e:
                log("client", self.nick, "SEND_ERROR", level="WARN", error=e)
                continue

            self.out.clear_prompt()
            chat(f"<{self.nick}> {text}")

    def stop(self):
        if self.loop is not None:
            self.loop.cancel()
        if self.session is not None:
            self.session.close()
        set_output(None)
        # leave the shell on a fresh line
        self.stdout.write("\n")
        self.stdout.flush()


def parse_args(argv=None):
    ap = argparse.ArgumentParser(
        prog="lanshout",
        description="Group chat for everyone on the local network segment.",
    )
    ap.add_argument("--interface", default="", help="the network interface you want to shout from")
    ap.add_argument("--address", default=DEFAULT_ADDRESS, help="the multicast address:port you want to shout to")
    ap.add_argument("--nick", default="", help="nickname you will use whilst shouting")
    ap.add_argument(
        "--loopback",
        action="store_true",
        help="also deliver to listeners on this host (lets several sessions share one machine)",
    )
    return ap.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = ShoutConfig(
        address=args.address,
        interface=args.interface or None,
        nickname=default_nickname(args.nick),
        loopback=args.loopback,
    )

    client = Client(config)
    try:
        client.start()
    except ShoutError as e:
        print(f"lanshout: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
