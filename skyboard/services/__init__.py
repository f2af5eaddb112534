"""
Services module for SkyBoard.

Read-path composition over the ingestion and storage layers.
"""

from skyboard.services.aggregator import AggregatedResponse, DataAggregator

__all__ = ['AggregatedResponse', 'DataAggregator']
