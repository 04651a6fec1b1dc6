"""
Command-line interface for uhdbridge.

- Starting a bridge server against a UHD device (or the mock receiver)
- Listing and killing running bridge servers
- Creating and showing the settings file

The CLI is built using the Click framework.

Examples
--------
Serving the first B200-series device found:
```bash
$ uhdbridge server -d type=b200
```

Serving a USRP at a fixed address with debug logging:
```bash
$ uhdbridge server -d addr=192.168.10.2 --debug
```

Serving the software receiver:
```bash
$ uhdbridge server -d mock
```

CLI Tree
--------

```
$ uhdbridge --tree
cli
└── config
    └── init
    └── show
└── kill
└── list
└── server
```
"""

from .base import cli

__all__ = ["cli"]
