"""
Airspace classification.

Maps lat/lon points to named airspace polygons loaded from a
refreshable GeoJSON boundary dataset.
"""

from trafficreplay.airspace.matcher import AirspaceMatcher, BoundaryFeature, FeatureSet, feature_label

__all__ = ['AirspaceMatcher', 'BoundaryFeature', 'FeatureSet', 'feature_label']
