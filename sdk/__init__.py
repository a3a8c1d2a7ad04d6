"""sdk - Software Development Kit for Pulse applications

Contains reusable modules for:
    - transport: Inter-process communication (NATS, in-process memory bus)
    - logging: Structured hierarchical logging

"""

__version__ = "1.0.0"
__versionInfo__ = (1, 0, 0)
__changelog__ = {
    "1.0.0": "Transport and logging layers for the Pulse packet pipeline"
}
