"""Publishers for changes that do not originate from a socket event.

Each helper builds the same payload the hub would send and emits it to the
participants' user rooms from synchronous Django code.
"""
