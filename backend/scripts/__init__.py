"""
Operator scripts for the catchment index.

This package contains maintenance scripts:
- seed_grid_cells: Load the external grid tiling into the grid catalog
- reindex_catchments: Rebuild catchment to grid-cell associations
"""
