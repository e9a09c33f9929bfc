class FileSlice:
    """
    given a source supporting read_at(offset, n)
    and given a start and end position,
    this object supports read(n) through the region sequentially.
    """
    def __init__(self, source, start, end):
        self.source = source
        self.start = start
        self.end = end
    def read(self, n=-1):
        remaining = self.end - self.start
        if n == None or n < 0 or n > remaining: n = remaining
        if n <= 0: return b""
        buf = self.source.read_at(self.start, n)
        self.start += len(buf)
        return buf
