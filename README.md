# osmimport

Building blocks for importing OpenStreetMap data: element types, compact
binary encodings, on-disk caches for nodes, ways, relations and coordinates,
reference indexes for applying diffs, expired-tile lists and option parsing.
It needs only the Python standard library (3.10 or later).

## Modules

- `osmimport.osm` – the dataclasses `Node`, `Way`, `Relation`, `Member` and
  the enum `MemberType` (`NODE`, `WAY`, `RELATION`).
- `osmimport.element` – `IDRefs`, an ID with a sorted, duplicate-free list of
  references (`add`, `delete`), and `REL_ID_OFFSET`.
- `osmimport.tags` – `tags_as_array`, `tags_from_array`, `append_tag` and
  `tag_codepoint`. Frequent tags such as `building=yes` become one
  private-use character, frequent keys such as `name` one control character
  in front of the value; keys that could be confused with these codes are
  escaped with U+FFFD. `tags_from_array` raises `ValueError` on a truncated
  array.
- `osmimport.varint` – `encode_uvarint`, `encode_varint` (zig-zag),
  `decode_uvarint`, `decode_varint`. Decoding returns `(value, next_offset)`
  and raises `ValueError` on truncated or overflowing data.
- `osmimport.deltacoords` – `coord_to_int`, `int_to_coord`,
  `marshal_delta_nodes`, `unmarshal_delta_nodes`: node IDs, longitudes and
  latitudes as three delta-encoded varint runs.
- `osmimport.idrefs_codec` – `marshal_idrefs_bunch`, `unmarshal_idrefs_bunch`
  for lists of `IDRefs`.
- `osmimport.serialize` – `marshal_node`/`unmarshal_node`,
  `marshal_way`/`unmarshal_way`, `marshal_relation`/`unmarshal_relation`,
  `delta_pack`, `delta_unpack`. The element ID is not stored (it is the cache
  key); unmarshalled elements have ID 0.
- `osmimport.cacheconfig` – `CacheOptions`, `CoordsCacheOptions`,
  `OSMCacheOptions`, `default_cache_options()` and `load_cache_options(path)`.
- `osmimport.store` – `KeyValueStore`, a directory holding an SQLite file
  (`store.sqlite`) with bytes keys kept in order (`get`, `put`, `delete`,
  `write_batch`, `items`, `close`); `id_to_key`/`id_from_key` (8-byte
  big-endian keys); `NotFoundError`.
- `osmimport.element_caches` – `NodesCache`, `WaysCache`, `RelationsCache`.
  `get_*` raises `NotFoundError` for missing IDs; `iter()` yields all cached
  elements in key order. Nodes without tags and elements with ID -1 are not
  stored; `put_relations` also skips untagged relations.
  `WaysCache.fill_members` attaches cached ways to way members.
- `osmimport.coords` – `DeltaCoordsCache`, which groups nodes by ID into
  `CoordsBunch`es kept in an LRU table and written delta-encoded;
  `put_coords` (nodes sorted by ID), `get_coord`, `delete_coord`, `fill_way`,
  `first_ref_is_cached`, `flush`, `close`, and a linear-import mode for bulk
  loads. `remove_skipped_nodes` drops nodes with ID -1.
- `osmimport.osmcache` – `OSMCache`, opening the coords, nodes, ways and
  relations caches below one directory; `exists`, `remove` and
  `first_member_is_cached`.
- `osmimport.diffcache` – `DiffCache` with `CoordsRefIndex` (node → ways),
  `CoordsRelRefIndex` (node → relations) and `WaysRefIndex` (way →
  relations), built on `RefIndex`, plus `IDRefBunch`, `IDRefBunches` and
  `merge_bunch`. In linear-import mode additions are buffered and written in
  batches; `get` and deletes then raise `RuntimeError`.
- `osmimport.expire` – `TileList` collects expired tiles per zoom level;
  `expire_projected_node` and `expire_projected_nodes` accept EPSG:4326 or
  EPSG:3857 coordinates and raise `ValueError` for other SRIDs.
- `osmimport.config` – `parse_import`, `parse_diff_import`,
  `parse_run_import` for single-dash flags (`-mapping file.yml`,
  `-srid=4326`, …) merged with a JSON file given by `-config`, returning
  `ImportOptions` / `BaseOptions` with `Schemas`. Problems raise
  `ConfigError`, which carries `errors` and `usage`. Also `parse_duration`
  (`"1h30m"`) and `parse_minutes_interval` (duration string or minutes).

## Examples

```python
from osmimport.tags import tags_as_array, tags_from_array

array = tags_as_array({"name": "foo", "highway": "residential"})
assert tags_from_array(array) == {"name": "foo", "highway": "residential"}
```

```python
from osmimport.store import id_from_key, id_to_key

assert id_from_key(id_to_key(1234)) == 1234
assert id_to_key(1) < id_to_key(2)
```

```python
from osmimport.element import IDRefs

refs = IDRefs(100)
refs.add(10)
refs.add(1)
refs.add(10)
refs.delete(1)
assert refs.refs == [10]
```

```python
import io
from osmimport.expire import TileList

tiles = TileList(14, "expired-tiles")
tiles.expire(8.30, 53.26)
out = io.StringIO()
tiles.write_tiles(out)
print(out.getvalue())   # one "zoom/x/y" line per tile
```

`TileList.flush()` writes the tiles to `OUT/YYYYMMDD/HHMMSS.mmm.tiles`
(first as `.tiles~`, then renamed), resets the list and returns the path, or
returns `None` when nothing was expired.

## Cache tuning

`default_cache_options()` returns the built-in settings for every cache.
`load_cache_options(path)` overrides them from a JSON file with the sections
`Coords`, `Nodes`, `Ways`, `Relations`, `CoordsIndex` and `WaysIndex`
(keys such as `CacheSizeM`, `BunchSize`, `BunchCacheCapacity`). Without a
path it reads the file named by the `OSMIMPORT_CACHE_CONFIG` environment
variable, or returns the defaults when that is unset.

## What the package does not do

There is no command-line program. The package does not read OSM data files
or change files, download replication diffs, or write to a database: the
option parsers only produce option objects, and the caches and indexes are
meant to be driven by code that does the reading and writing.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.