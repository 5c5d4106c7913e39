"""svp - Simple VPS Provisioner.

Provisions Nginx + PHP-FPM virtual hosts and manages their
basic auth and SSL lifecycle.
"""

__version__ = "0.4.0"
