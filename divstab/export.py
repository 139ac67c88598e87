"""
DIVSTAB Network Export
======================

Serialize a stream network as attributed polyline segments.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import geopandas as gpd
import numpy as np
from shapely.geometry import LineString

from .exceptions import ExportError
from .stream_network import StreamNetwork

SHAPEFILE_FIELDS = ("chan_elev", "slope", "relief", "chi")


class NetworkExporter:
    """
    Split a stream network into segments and write them with attributes.

    Links run from a channel head or confluence down to the next confluence
    or outlet. Each link is cut into consecutive segments at least
    ``segment_length`` long (the last one may be shorter), sharing their end
    vertices. A segment takes the maximum of each node attribute.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def links(self, network: StreamNetwork) -> List[np.ndarray]:
        """Node paths between heads, confluences and outlets."""
        givers = network.giver_counts
        receivers = network.receivers

        starts = np.flatnonzero((givers == 0) | ((givers >= 2) & (receivers >= 0)))
        starts = starts[np.argsort(network.cells[starts], kind="stable")]

        links = []
        for start in starts:
            path = [start]
            current = start
            while receivers[current] >= 0:
                current = receivers[current]
                path.append(current)
                if givers[current] >= 2:
                    break
            if len(path) > 1:
                links.append(np.asarray(path, dtype=np.int64))
        return links

    def segments(self, network: StreamNetwork, segment_length: float) -> Iterator[np.ndarray]:
        """Node paths of segments at least ``segment_length`` long."""
        lengths = network.edge_lengths()
        for link in self.links(network):
            segment = [link[0]]
            travelled = 0.0
            for k in range(1, link.size):
                segment.append(link[k])
                travelled += lengths[link[k - 1]]
                if travelled >= segment_length and k < link.size - 1:
                    yield np.asarray(segment, dtype=np.int64)
                    segment = [link[k]]
                    travelled = 0.0
            yield np.asarray(segment, dtype=np.int64)

    def to_geodataframe(
        self,
        network: StreamNetwork,
        attributes: Dict[str, np.ndarray],
        segment_length: float,
    ) -> gpd.GeoDataFrame:
        """
        Segments as a GeoDataFrame with one column per attribute.

        Args:
            network: Stream network
            attributes: Per-node arrays aligned with ``network.cells``
            segment_length: Minimum segment length in map units
        """
        for name, values in attributes.items():
            if np.shape(values) != network.cells.shape:
                raise ExportError(f"Attribute '{name}' does not match the network length")

        xy = network.xy()
        geometries = []
        records: Dict[str, list] = {name: [] for name in attributes}

        for segment in self.segments(network, segment_length):
            geometries.append(LineString(xy[segment]))
            for name, values in attributes.items():
                records[name].append(float(np.fmax.reduce(np.asarray(values)[segment])))

        return gpd.GeoDataFrame(records, geometry=geometries, crs=network.crs)

    def export(
        self,
        network: StreamNetwork,
        attributes: Dict[str, np.ndarray],
        path: Union[str, Path],
        segment_length: float,
    ) -> gpd.GeoDataFrame:
        """
        Write the attributed segments to ``path``.

        Raises:
            ExportError: If the file cannot be written
        """
        path = Path(path)
        gdf = self.to_geodataframe(network, attributes, segment_length)

        if gdf.empty:
            self.logger.warning(f"Stream network has no segments, {path} not written")
            return gdf

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.suffix.lower() == ".shp":
                gdf.to_file(path, driver="ESRI Shapefile")
            else:
                gdf.to_file(path)
        except Exception as e:
            raise ExportError(f"Failed to write stream network to {path}: {e}")

        self.logger.info(f"Stream network saved to {path} ({len(gdf)} segments)")
        return gdf
