"""TCP power-control server for a detector's supplies, module enables and LEDs, driven by sysfs-style files."""

__version__ = "1.0"