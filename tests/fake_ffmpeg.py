"""Stand-in for the ffmpeg executable used by the test suite.

It copies its input (a file named after ``-i`` or stdin for ``pipe:0``) to
stdout unchanged and reports progress on stderr the way FFmpeg does.

Behaviour switches:
- input file ending in ``.fail``: print an error and exit with status 1
- ``-acodec fail_codec``: same, for stdin input
- ``FAKE_FFMPEG_ARGS_LOG`` env var: append argv as one JSON line to that file
"""

from __future__ import annotations

import json
import os
import sys

CHUNK = 4096


def _arg_after(argv: list[str], flag: str) -> str | None:
    for index, value in enumerate(argv[:-1]):
        if value == flag:
            return argv[index + 1]
    return None


def _progress(written: int) -> None:
    seconds = written / (48000 * 2 * 2)
    sys.stderr.write(
        f"size={written // 1024:8d}kB time=00:00:{seconds:05.2f} bitrate=1536.0kbits/s speed=1.00x\r"
    )
    sys.stderr.flush()


def main(argv: list[str]) -> int:
    log_path = os.environ.get("FAKE_FFMPEG_ARGS_LOG")
    if log_path:
        with open(log_path, "a", encoding="utf-8") as log:
            log.write(json.dumps(argv) + "\n")

    source = _arg_after(argv, "-i")
    sys.stderr.write("fake ffmpeg version 0.0\n")
    if _arg_after(argv, "-acodec") == "fail_codec" or (source or "").endswith(".fail"):
        sys.stderr.write("Invalid data found when processing input\n")
        sys.stderr.flush()
        return 1

    if source in (None, "pipe:0", "-"):
        reader = sys.stdin.buffer
        close_reader = False
    else:
        reader = open(source, "rb")
        close_reader = True

    written = 0
    out = sys.stdout.buffer
    try:
        while True:
            chunk = reader.read1(CHUNK) if hasattr(reader, "read1") else reader.read(CHUNK)
            if not chunk:
                break
            out.write(chunk)
            out.flush()
            written += len(chunk)
            _progress(written)
    except BrokenPipeError:
        return 0
    finally:
        if close_reader:
            reader.close()
    sys.stderr.write("\nfake encoder done\n")
    sys.stderr.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
