"""
Event log recording and replay.

- EventLogWriter: append-only recorder, one file per run
- reader: tolerant parser for recorded files
- ReplayScheduler: paced delivery (realtime or fixed cadence, speed-scaled)
- ReplaySinkAdapter: replay narrated through live-run shaped hooks
- locator: discovery of recordings in a directory
"""
