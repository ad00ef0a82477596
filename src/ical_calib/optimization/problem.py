"""Live nonlinear least-squares calibration problem.

A CalibrationProblem collects residual blocks, each binding one cost term
to one intrinsics block and one pose block of the registry. The problem
lays the non-constant blocks it references out into a flat parameter
vector for the solver, evaluates residuals for any such vector without
touching the blocks, and writes a solution back into the blocks in place.

The cost of the problem is 0.5 * sum(residual^2).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import lil_matrix

from ical_calib.common.errors import ParameterBlockError
from ical_calib.common.logging import get_logger
from ical_calib.optimization.blocks import ParameterBlock
from ical_calib.optimization.costs import CameraReprjErrorWithDistortion

logger = get_logger(__name__)


@dataclass(eq=False)
class ResidualBlock:
    """One cost term bound to its parameter blocks.
    
    Attributes:
        cost_function: The cost term.
        intrinsics_block: Camera intrinsics block.
        pose_block: Target pose block.
        row_offset: Index of the first residual row in the problem.
    """
    
    cost_function: CameraReprjErrorWithDistortion
    intrinsics_block: ParameterBlock
    pose_block: ParameterBlock
    row_offset: int
    
    @property
    def num_residuals(self) -> int:
        return self.cost_function.num_residuals
    
    @property
    def camera_name(self) -> str:
        return self.intrinsics_block.owner


@dataclass
class _ResidualGroup:
    """Residual blocks sharing the same pair of parameter blocks."""
    
    intrinsics_block: ParameterBlock
    pose_block: ParameterBlock
    rows: NDArray[np.int64]
    points: NDArray[np.float64]
    observed: NDArray[np.float64]
    diameters: NDArray[np.float64]


class CalibrationProblem:
    """Residual terms and parameter layout of one calibration run.
    
    A problem is created fresh by every session start and never reused.
    """
    
    def __init__(self) -> None:
        self._residual_blocks: List[ResidualBlock] = []
        self._num_residuals = 0
        self._constant_overrides: Dict[ParameterBlock, bool] = {}
        self._groups: Optional[List[_ResidualGroup]] = None
    
    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------
    
    def add_residual_block(
        self,
        cost_function: CameraReprjErrorWithDistortion,
        intrinsics_block: ParameterBlock,
        pose_block: ParameterBlock,
    ) -> ResidualBlock:
        """Append a cost term bound to an intrinsics block and a pose block.
        
        Raises:
            ParameterBlockError: If a block has been released by its registry.
            ValueError: If the block sizes do not match the cost term.
        """
        for block in (intrinsics_block, pose_block):
            if not block.valid:
                raise ParameterBlockError(f"Parameter block '{block.name}' has been released")
        
        expected = cost_function.parameter_block_sizes
        actual = (intrinsics_block.size, pose_block.size)
        if tuple(expected) != actual:
            raise ValueError(f"Parameter block sizes {actual} do not match cost term {expected}")
        
        residual_block = ResidualBlock(
            cost_function=cost_function,
            intrinsics_block=intrinsics_block,
            pose_block=pose_block,
            row_offset=self._num_residuals,
        )
        self._residual_blocks.append(residual_block)
        self._num_residuals += cost_function.num_residuals
        self._groups = None
        return residual_block
    
    def set_parameter_block_constant(self, block: ParameterBlock) -> None:
        """Hold a block fixed during the solve."""
        self._constant_overrides[block] = True
    
    def set_parameter_block_variable(self, block: ParameterBlock) -> None:
        """Let the solver adjust a block, overriding its registry flag."""
        self._constant_overrides[block] = False
    
    def is_parameter_block_constant(self, block: ParameterBlock) -> bool:
        return self._constant_overrides.get(block, block.constant)
    
    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    
    @property
    def residual_blocks(self) -> Tuple[ResidualBlock, ...]:
        return tuple(self._residual_blocks)
    
    @property
    def num_residual_blocks(self) -> int:
        return len(self._residual_blocks)
    
    @property
    def num_residuals(self) -> int:
        return self._num_residuals
    
    def num_residual_blocks_for(self, block: ParameterBlock) -> int:
        """Number of residual blocks that reference a parameter block."""
        return sum(
            1 for rb in self._residual_blocks
            if rb.intrinsics_block is block or rb.pose_block is block
        )
    
    def parameter_blocks(self) -> List[ParameterBlock]:
        """Blocks referenced by at least one residual, in first-use order."""
        seen: Dict[ParameterBlock, None] = {}
        for rb in self._residual_blocks:
            for block in (rb.intrinsics_block, rb.pose_block):
                seen.setdefault(block, None)
        return list(seen)
    
    def free_parameter_blocks(self) -> List[ParameterBlock]:
        """Referenced blocks the solver may adjust."""
        return [b for b in self.parameter_blocks() if not self.is_parameter_block_constant(b)]
    
    @property
    def num_parameters(self) -> int:
        return sum(b.size for b in self.free_parameter_blocks())
    
    # ------------------------------------------------------------------
    # Parameter vector <-> blocks
    # ------------------------------------------------------------------
    
    def _layout(self) -> Dict[ParameterBlock, slice]:
        layout: Dict[ParameterBlock, slice] = {}
        offset = 0
        for block in self.free_parameter_blocks():
            layout[block] = slice(offset, offset + block.size)
            offset += block.size
        return layout
    
    def gather_parameters(self) -> NDArray[np.float64]:
        """Current values of the free blocks as a flat vector."""
        blocks = self.free_parameter_blocks()
        if not blocks:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate([b.values for b in blocks]).astype(np.float64)
    
    def scatter_parameters(self, x: NDArray[np.float64]) -> None:
        """Write a flat parameter vector back into the free blocks in place.
        
        Raises:
            ParameterBlockError: If a block has been released.
            ValueError: If the vector length does not match the layout.
        """
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.num_parameters,):
            raise ValueError(f"Expected {self.num_parameters} parameters, got {x.shape}")
        
        for block in self.free_parameter_blocks():
            if not block.valid:
                raise ParameterBlockError(f"Parameter block '{block.name}' has been released")
        
        for block, span in self._layout().items():
            block.values[:] = x[span]
    
    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    
    def _residual_groups(self) -> List[_ResidualGroup]:
        if self._groups is not None:
            return self._groups
        
        buckets: Dict[Tuple[ParameterBlock, ParameterBlock], List[ResidualBlock]] = {}
        for rb in self._residual_blocks:
            buckets.setdefault((rb.intrinsics_block, rb.pose_block), []).append(rb)
        
        groups = []
        for members in buckets.values():
            points, observed, diameters = CameraReprjErrorWithDistortion.stack(
                [rb.cost_function for rb in members]
            )
            rows = np.concatenate([
                np.arange(rb.row_offset, rb.row_offset + rb.num_residuals) for rb in members
            ])
            groups.append(_ResidualGroup(
                intrinsics_block=members[0].intrinsics_block,
                pose_block=members[0].pose_block,
                rows=rows,
                points=points,
                observed=observed,
                diameters=diameters,
            ))
        
        self._groups = groups
        return groups
    
    def evaluate(self, x: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """Evaluate all residuals.
        
        Args:
            x: Optional flat parameter vector for the free blocks. When None
                the current block values are used. The blocks are not modified.
                
        Returns:
            Residual vector of length num_residuals.
        """
        layout = self._layout() if x is not None else {}
        
        def values(block: ParameterBlock) -> NDArray[np.float64]:
            span = layout.get(block)
            return block.values if span is None else x[span]
        
        residuals = np.zeros(self._num_residuals, dtype=np.float64)
        for group in self._residual_groups():
            residuals[group.rows] = CameraReprjErrorWithDistortion.evaluate_batch(
                values(group.intrinsics_block),
                values(group.pose_block),
                group.points,
                group.observed,
                group.diameters,
            )
        return residuals
    
    def cost(self, x: Optional[NDArray[np.float64]] = None) -> float:
        """Least-squares cost 0.5 * sum(residual^2)."""
        residuals = self.evaluate(x)
        return 0.5 * float(residuals @ residuals)
    
    def jacobian_sparsity(self) -> lil_matrix:
        """Block structure of the Jacobian (residual rows x free parameters)."""
        layout = self._layout()
        sparsity = lil_matrix((self._num_residuals, self.num_parameters), dtype=int)
        
        for rb in self._residual_blocks:
            rows = slice(rb.row_offset, rb.row_offset + rb.num_residuals)
            for block in (rb.intrinsics_block, rb.pose_block):
                span = layout.get(block)
                if span is not None:
                    sparsity[rows, span] = 1
        
        return sparsity
    
    def residuals_by_camera(self) -> Dict[str, NDArray[np.float64]]:
        """Current Nx2 residuals grouped by the camera owning the intrinsics block."""
        residuals = self.evaluate()
        grouped: Dict[str, List[NDArray[np.float64]]] = {}
        for rb in self._residual_blocks:
            grouped.setdefault(rb.camera_name, []).append(
                residuals[rb.row_offset:rb.row_offset + rb.num_residuals]
            )
        return {name: np.array(rows) for name, rows in grouped.items()}
