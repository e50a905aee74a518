"""OpenSea sale indexer - Wyvern atomicMatch_ settlement normalization."""

__version__ = "0.1.0"
