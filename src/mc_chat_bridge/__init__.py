VERSION = "0.1"
