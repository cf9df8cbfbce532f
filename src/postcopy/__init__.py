"""
postcopy - a post-copy live migration simulator.

The VM resumes on the target host after only its critical state has been
moved; every other page is pulled across the link when the VM touches it.
"""

__version__ = "0.1.0"
