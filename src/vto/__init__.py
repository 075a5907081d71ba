"""Video Transcode Orchestrator.

Queue-driven transcode workers that track every task through a durable
status record and adapt encoder selection to the local hardware.
"""

__version__ = "0.1.0"
