"""PedidoList terminal backend: offline-first local store and sync engine."""

__version__ = "1.0.0"
