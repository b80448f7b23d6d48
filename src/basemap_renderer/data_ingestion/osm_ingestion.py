"""
OpenStreetMap Feature Source

Reads OpenStreetMap data in XML (plain or gzip-compressed) and PBF formats
and turns tagged nodes and ways into raw features. Closed ways that describe
areas become polygons, every other way becomes a line string.
"""

import gzip
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Any, Union, Tuple
from pathlib import Path

import osmium

from .base_ingester import BaseFeatureSource
from .features import RawFeature, GeometryType, Coordinate


class OSMFeatureSource(BaseFeatureSource):
    """
    Feature source for OpenStreetMap extracts.

    Nodes without tags only contribute locations to the ways that reference
    them. Relations are not assembled into geometries.
    """

    source_type = "osm"

    # Keys whose presence makes a closed way an area
    AREA_KEYS = ('building', 'landuse', 'natural', 'leisure', 'amenity')

    # natural=* values mapped as lines even when the way is closed
    LINEAR_NATURAL_VALUES = frozenset({
        'coastline', 'cliff', 'tree_row', 'ridge', 'arete', 'earth_bank', 'gully', 'valley'
    })

    def extract(self, source: Union[str, Path]) -> Dict[str, Any]:
        """
        Extract nodes and ways from an OSM file.

        Args:
            source: Path to a .osm, .xml, .osm.gz or .pbf file

        Returns:
            Dictionary with ``nodes``, ``node_locations``, ``ways`` and ``metadata``
        """
        file_path = Path(source)

        if not file_path.exists():
            raise FileNotFoundError(f"OSM file not found: {file_path}")

        self.logger.info("Extracting OSM data from file", file_path=str(file_path))

        suffix = file_path.suffix.lower()
        if suffix == '.pbf':
            return self._extract_from_pbf(file_path)
        elif suffix in ['.osm', '.xml']:
            return self._extract_from_xml(file_path)
        elif suffix == '.gz':
            if file_path.stem.endswith('.osm') or file_path.stem.endswith('.xml'):
                return self._extract_from_compressed_xml(file_path)
            raise ValueError(f"Unsupported compressed file format: {file_path}")
        else:
            raise ValueError(f"Unsupported OSM file format: {file_path.suffix}")

    def _extract_from_pbf(self, file_path: Path) -> Dict[str, Any]:
        """Extract data from OSM PBF format using osmium."""
        nodes = []
        ways = []

        class OSMHandler(osmium.SimpleHandler):
            def __init__(self, source):
                osmium.SimpleHandler.__init__(self)
                self.source = source

            def node(self, n):
                if n.tags:
                    nodes.append({
                        'id': n.id,
                        'lat': n.location.lat,
                        'lon': n.location.lon,
                        'tags': [(tag.k, tag.v) for tag in n.tags]
                    })

            def way(self, w):
                coords = []
                for node_ref in w.nodes:
                    if node_ref.location.valid():
                        coords.append((node_ref.lon, node_ref.lat))
                ways.append({
                    'id': w.id,
                    'nodes': [node_ref.ref for node_ref in w.nodes],
                    'coords': coords,
                    'tags': [(tag.k, tag.v) for tag in w.tags]
                })

        handler = OSMHandler(self)
        handler.apply_file(str(file_path), locations=True)

        self.logger.info("PBF extraction completed", nodes=len(nodes), ways=len(ways))

        return {
            'nodes': nodes,
            'node_locations': {},
            'ways': ways,
            'metadata': {
                'source_file': str(file_path),
                'format': 'pbf',
                'total_elements': len(nodes) + len(ways)
            }
        }

    def _extract_from_xml(self, file_path: Path) -> Dict[str, Any]:
        with open(file_path, 'rb') as f:
            data = self._parse_xml_stream(f)
        data['metadata'].update({'source_file': str(file_path), 'format': 'xml'})
        return data

    def _extract_from_compressed_xml(self, file_path: Path) -> Dict[str, Any]:
        with gzip.open(file_path, 'rb') as f:
            data = self._parse_xml_stream(f)
        data['metadata'].update({'source_file': str(file_path), 'format': 'xml.gz'})
        return data

    def _parse_xml_stream(self, stream) -> Dict[str, Any]:
        """Parse an OSM XML stream iteratively."""
        nodes = []
        node_locations = {}
        ways = []

        context = iter(ET.iterparse(stream, events=('start', 'end')))
        _, root = next(context)

        for event, elem in context:
            if event != 'end':
                continue

            if elem.tag == 'node':
                location = self._parse_node_location(elem)
                if location:
                    node_id, lon, lat = location
                    node_locations[node_id] = (lon, lat)
                    node_data = self._parse_node_element(elem)
                    if node_data:
                        nodes.append(node_data)
                root.clear()

            elif elem.tag == 'way':
                way_data = self._parse_way_element(elem)
                if way_data:
                    ways.append(way_data)
                root.clear()

            elif elem.tag == 'relation':
                root.clear()

        self.logger.info(
            "XML extraction completed",
            nodes=len(nodes),
            ways=len(ways),
            node_locations=len(node_locations)
        )

        return {
            'nodes': nodes,
            'node_locations': node_locations,
            'ways': ways,
            'metadata': {'total_elements': len(nodes) + len(ways)}
        }

    def _parse_node_location(self, elem) -> Optional[Tuple[int, float, float]]:
        try:
            return int(elem.get('id')), float(elem.get('lon')), float(elem.get('lat'))
        except (ValueError, TypeError) as e:
            self.logger.warning("Failed to parse node element", error=str(e))
            return None

    @staticmethod
    def _parse_tags(elem) -> List[Tuple[str, str]]:
        tags = []
        for tag_elem in elem.findall('tag'):
            key = tag_elem.get('k')
            value = tag_elem.get('v')
            if key and value is not None:
                tags.append((key, value))
        return tags

    def _parse_node_element(self, elem) -> Optional[Dict]:
        """Parse a tagged node element; untagged nodes return None."""
        try:
            tags = self._parse_tags(elem)
            if not tags:
                return None
            return {
                'id': int(elem.get('id')),
                'lat': float(elem.get('lat')),
                'lon': float(elem.get('lon')),
                'tags': tags
            }
        except (ValueError, TypeError) as e:
            self.logger.warning("Failed to parse node element", error=str(e))
            return None

    def _parse_way_element(self, elem) -> Optional[Dict]:
        """Parse a way element from XML."""
        try:
            way_id = int(elem.get('id'))

            nodes = []
            for nd_elem in elem.findall('nd'):
                ref = nd_elem.get('ref')
                if ref:
                    nodes.append(int(ref))

            return {
                'id': way_id,
                'nodes': nodes,
                'tags': self._parse_tags(elem)
            }

        except (ValueError, TypeError) as e:
            self.logger.warning("Failed to parse way element", error=str(e))
            return None

    def validate(self, data: Dict[str, Any]) -> bool:
        """
        Validate extracted OSM data for completeness.

        Args:
            data: Extracted OSM data dictionary

        Returns:
            True if data passes validation, False otherwise
        """
        for key in ['nodes', 'ways', 'metadata']:
            if key not in data:
                self.logger.error("Missing required key in OSM data", key=key)
                return False

        if not data['nodes'] and not data['ways']:
            self.logger.error("No OSM elements found")
            return False

        return True

    def transform(self, data: Dict[str, Any]) -> List[RawFeature]:
        """
        Turn tagged nodes and ways into raw features.

        Args:
            data: Extracted OSM data dictionary

        Returns:
            List of raw features, nodes first, then ways
        """
        node_locations = data.get('node_locations', {})
        features = []

        for node in data['nodes']:
            feature = self._node_to_feature(node)
            if feature is not None:
                features.append(feature)

        for way in data['ways']:
            feature = self._way_to_feature(way, node_locations)
            if feature is not None:
                features.append(feature)

        self.logger.info(
            "OSM data transformation completed",
            total_features=len(features),
            failed=self.stats['records_failed']
        )

        return features

    def _node_to_feature(self, node: Dict) -> Optional[RawFeature]:
        tags = tuple(node.get('tags', ()))
        feature = RawFeature(
            geometry_type=GeometryType.POINT,
            coordinates=(Coordinate(node['lon'], node['lat']),),
            tags=tags,
            label=self._label_from_tags(tags)
        )
        if not self._validate_feature(feature):
            self._record_failure(f"Invalid node {node.get('id')}")
            return None
        return feature

    def _way_to_feature(
        self,
        way: Dict,
        node_locations: Dict[int, Tuple[float, float]]
    ) -> Optional[RawFeature]:
        tags = tuple(way.get('tags', ()))
        if not tags:
            return None

        if 'coords' in way:
            coords = way['coords']
        else:
            coords = [node_locations[ref] for ref in way['nodes'] if ref in node_locations]

        if len(coords) < len(way['nodes']):
            self.logger.debug(
                "Way references missing nodes",
                way_id=way['id'],
                resolved=len(coords),
                referenced=len(way['nodes'])
            )

        geometry_type = GeometryType.LINESTRING
        if self._is_area(way['nodes'], tags) and len(coords) >= 4:
            geometry_type = GeometryType.POLYGON

        feature = RawFeature(
            geometry_type=geometry_type,
            coordinates=tuple(Coordinate(lon, lat) for lon, lat in coords),
            tags=tags,
            label=self._label_from_tags(tags)
        )
        if not self._validate_feature(feature):
            self._record_failure(f"Invalid way {way['id']}")
            return None
        return feature

    def _is_area(self, node_refs: List[int], tags: Tuple[Tuple[str, str], ...]) -> bool:
        """A closed way is an area when tagged area=yes or with an area key."""
        if len(node_refs) < 4 or node_refs[0] != node_refs[-1]:
            return False

        area_value = None
        for key, value in tags:
            if key == 'area':
                area_value = value
                break
        if area_value == 'no':
            return False
        if area_value == 'yes':
            return True

        return any(
            key in self.AREA_KEYS
            and not (key == 'natural' and value in self.LINEAR_NATURAL_VALUES)
            for key, value in tags
        )

    @staticmethod
    def _label_from_tags(tags: Tuple[Tuple[str, str], ...]) -> str:
        for key, value in tags:
            if key == 'name':
                return value
        return ""
