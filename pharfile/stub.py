import logging

from .common import halt_compiler_marker, MarkerNotFoundError, UnexpectedEndError

logger = logging.getLogger(__name__)

default_window_size = 200

def locate_stub(source, window_size=default_window_size):
    """
    Finds the end of the bootstrap stub and returns the offset where the manifest starts.
    The marker may be split across two windows; the tail of each window is carried into the next search.
    """
    if window_size < 1: raise ValueError("window_size must be positive")
    tail_size = len(halt_compiler_marker) - 1
    tail = b""
    position = 0
    while True:
        window = source.read_at(position, window_size)
        if len(window) == 0:
            # Running out of input is the only way to give up.
            raise MarkerNotFoundError("cannot find {!r} in {} bytes of stub".format(halt_compiler_marker.decode("ascii"), position))

        search = tail + window
        index = search.find(halt_compiler_marker)
        if index != -1:
            offset = position - len(tail) + index + len(halt_compiler_marker)
            return _skip_line_ending(source, offset)

        position += len(window)
        tail = search[-tail_size:]

def _skip_line_ending(source, offset):
    # Optional \r\n or \n.
    after = source.read_at(offset, 2)
    if len(after) < 2: raise UnexpectedEndError("unexpected end of file after stub marker at offset {}".format(offset))
    if after == b"\r\n":
        offset += 2
    elif after[0:1] == b"\n":
        offset += 1
    logger.debug("manifest starts at offset %d", offset)
    return offset
