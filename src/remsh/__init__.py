"""remsh -- remote command sessions over a plain TCP stream.

A server accepts a connection, runs each command line it receives as a
child process and streams the merged output back, terminated by a
literal end-of-output marker. The client reassembles those responses
and presents an interactive prompt.
"""

__version__ = "0.1.0"
