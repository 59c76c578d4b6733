"""Stand-in for whisper-cli: prints the chunk's text the way the real one does.

Chunk contents may carry a directive:
  slow:SECONDS:TEXT   sleep before answering
  !crash              exit non-zero
  !garbage            print output without a blank-line delimited payload
"""

import sys
import time
from pathlib import Path


def main(argv):
    text = Path(argv[-1]).read_text(encoding="utf-8")

    if text.startswith("slow:"):
        _, seconds, text = text.split(":", 2)
        time.sleep(float(seconds))

    if text == "!crash":
        print("error: failed to load model", file=sys.stderr)
        return 2

    print("whisper_init_from_file: loading model")
    if text == "!garbage":
        print("no speech here")
        return 0

    print()
    print(text)
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
