"""Exporters for delivering telemetry batches to backends."""

from yuugen.exporter.http_exporter import HttpExporter

__all__ = ["HttpExporter"]
