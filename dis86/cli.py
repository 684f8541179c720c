from __future__ import annotations

import dataclasses
import logging
import sys
from typing import Optional

from plumbum import cli  # type: ignore[import-untyped]

from . import __version__
from .config import FailurePolicy, load_disasm_config
from .decoding import DecodeError
from .driver import Driver
from .emulator import EmulationError, Emulator
from .loader import ImageFormat, ImageLoadError, load_image


def _parse_int(text: str) -> int:
    return int(text, 0)


class Dis86CLI(cli.Application):
    """Disassemble an 8086 code image into NASM source that reassembles byte-identically."""

    PROGNAME = "dis86"
    VERSION = __version__

    recover = cli.Flag(
        ["-r", "--recover"],
        help="Emit undecodable bytes as data and keep going instead of failing",
    )
    no_header = cli.Flag("--no-header", help="Omit the 'bits 16' / 'org' header")
    listing = cli.Flag("--listing", help="Append address and byte comments to each line")
    execute = cli.Flag(
        "--exec", help="Also run the image in the emulator and report final registers"
    )
    trace = cli.Flag(
        "--trace", requires=["--exec"], help="List each executed instruction as a comment"
    )
    verbose = cli.Flag(["-v", "--verbose"], help="Log decoder state transitions to stderr")
    origin: Optional[int] = cli.SwitchAttr(
        "--origin", _parse_int, default=None, help="Load address of a flat binary"
    )
    image_format = cli.SwitchAttr(
        ["-f", "--format"],
        cli.Set(*(fmt.value for fmt in ImageFormat)),
        default=ImageFormat.AUTO.value,
        help="Input image format",
    )
    step_limit: Optional[int] = cli.SwitchAttr(
        "--step-limit", int, default=None, help="Maximum instructions executed by --exec"
    )

    def main(self, input_file: cli.ExistingFile) -> int:
        logging.basicConfig(
            level=logging.DEBUG if self.verbose else logging.WARNING,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

        config = load_disasm_config()
        origin = self.origin if self.origin is not None else (config.origin or None)
        try:
            image = load_image(input_file, self.image_format.lower(), origin)
        except ImageLoadError as e:
            print(f"{self.PROGNAME}: {e}", file=sys.stderr)
            return 1

        config = dataclasses.replace(config, origin=image.origin)
        if self.recover:
            config = dataclasses.replace(config, policy=FailurePolicy.RAW_BYTE)
        if self.no_header:
            config = dataclasses.replace(config, header=False)
        if self.listing:
            config = dataclasses.replace(config, listing=True)
        if self.step_limit is not None:
            config = dataclasses.replace(config, step_limit=self.step_limit)

        try:
            for line in Driver(image.data, config).lines():
                print(line)
        except DecodeError as e:
            sys.stdout.flush()
            print(f"{self.PROGNAME}: {e}", file=sys.stderr)
            return 1

        if self.execute:
            try:
                state = Emulator(image.data, image.origin).run(config.step_limit, trace=self.trace)
            except EmulationError as e:
                sys.stdout.flush()
                print(f"{self.PROGNAME}: {e}", file=sys.stderr)
                return 1
            for line in state.trace + state.comment_lines():
                print(line)
        return 0


def main() -> None:
    Dis86CLI.run()


if __name__ == "__main__":
    main()
