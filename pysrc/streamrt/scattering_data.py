"""
Single-scattering properties of one scattering element (particle class).

Tables are gridded in frequency and temperature and interpolated linearly
in both. Two orientation classes are handled:

- Totally random: phase matrix as the six independent elements
  F11, F12, F22, F33, F34, F44 on a scattering-angle grid; scalar
  extinction and absorption cross sections.
- Azimuthally random: full 4x4 lab-frame phase matrix on
  (za_sca, delta_aa, za_inc) grids with delta_aa in [0, 180]; extinction
  stored compressed as (K11, K12, K34) and absorption as (a1, a2) per
  incidence angle.

Units: cross sections in m^2, phase matrices in m^2 sr^-1 normalized so
that the (0, 0) element integrated over all scattering directions gives
the scattering cross section. Multiplying by number density [m^-3] gives
the bulk coefficients [m^-1] used by the aggregator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from .constants import DEG2RAD, RAD2DEG
from .errors import InvalidAtmosphere, InvalidConfiguration
from .utils import interp_weights

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

# Below this sine a direction is treated as lying on the pole (or a
# scattering angle as exactly forward/backward)
_POLE_TOL = 1e-9

# Flips the sign of U and V; mirrors the scattering geometry in azimuth
_MIRROR = np.array([1.0, 1.0, -1.0, -1.0])


class ParticleType(str, Enum):
    """Particle orientation symmetry classes."""

    TOTALLY_RANDOM = "totally_random"
    AZIMUTHALLY_RANDOM = "azimuthally_random"
    GENERAL = "general"


def mirror_average(matrix: NDArray[np.floating]) -> NDArray[np.floating]:
    """
    Average a (..., S, S) matrix with its azimuthal mirror image.

    Elements coupling {I, Q} with {U, V} are odd in delta_aa and cancel.
    """
    s = matrix.shape[-1]
    d = _MIRROR[:s]
    return 0.5 * (matrix + d[:, None] * matrix * d[None, :])


def wrap_azimuth(delta_aa: ArrayLike) -> NDArray[np.floating]:
    """Map an azimuth difference [deg] into (-180, 180]."""
    d = np.asarray(delta_aa, dtype=np.float64)
    return 180.0 - (180.0 - d) % 360.0


def _rotation(c: NDArray[np.floating], s: NDArray[np.floating]) -> NDArray[np.floating]:
    rot = np.zeros(c.shape + (4, 4))
    rot[..., 0, 0] = 1.0
    rot[..., 3, 3] = 1.0
    rot[..., 1, 1] = c
    rot[..., 2, 2] = c
    rot[..., 1, 2] = -s
    rot[..., 2, 1] = s
    return rot


def _lab_frame(
    f_elements: NDArray[np.floating],
    za_sca: NDArray[np.floating],
    za_inc: NDArray[np.floating],
    delta_aa: NDArray[np.floating],
    cos_theta: NDArray[np.floating],
    stokes_dim: int,
) -> NDArray[np.floating]:
    """Rotate scattering-plane matrices F into the lab (meridian) frame."""
    shape = cos_theta.shape
    if stokes_dim == 1:
        return f_elements[..., 0][..., None, None]

    f11, f12, f22, f33, f34, f44 = (f_elements[..., k] for k in range(6))
    scat = np.zeros(shape + (4, 4))
    scat[..., 0, 0] = f11
    scat[..., 0, 1] = f12
    scat[..., 1, 0] = f12
    scat[..., 1, 1] = f22
    scat[..., 2, 2] = f33
    scat[..., 2, 3] = f34
    scat[..., 3, 2] = -f34
    scat[..., 3, 3] = f44

    za_s = za_sca * DEG2RAD
    za_i = za_inc * DEG2RAD
    daa = delta_aa * DEG2RAD
    sin_t = np.sqrt(np.clip(1.0 - cos_theta**2, 0.0, 1.0))
    sin_i = np.sin(za_i)
    sin_s = np.sin(za_s)

    pole_inc = np.abs(sin_i) < _POLE_TOL
    pole_sca = np.abs(sin_s) < _POLE_TOL
    in_line = sin_t < _POLE_TOL
    general = ~(pole_inc | pole_sca | in_line)

    den1 = np.where(general, sin_i * sin_t, 1.0)
    den2 = np.where(general, sin_s * sin_t, 1.0)
    cos_s1 = np.where(general, (np.cos(za_s) - np.cos(za_i) * cos_theta) / den1, 1.0)
    cos_s2 = np.where(general, (np.cos(za_i) - np.cos(za_s) * cos_theta) / den2, 1.0)
    # Incident along the pole: its reference plane is fixed by the azimuth
    cos_s1 = np.where(pole_inc & ~in_line, np.cos(daa), cos_s1)
    cos_s2 = np.where(pole_sca & ~in_line & ~pole_inc, np.cos(daa), cos_s2)

    sign = np.where(daa >= 0.0, 1.0, -1.0)
    sigma1 = sign * np.arccos(np.clip(cos_s1, -1.0, 1.0))
    sigma2 = sign * np.arccos(np.clip(cos_s2, -1.0, 1.0))

    rot_inc = _rotation(np.cos(2.0 * sigma1), np.sin(2.0 * sigma1))
    rot_sca = _rotation(np.cos(2.0 * sigma2), np.sin(2.0 * sigma2))
    lab = rot_sca @ scat @ rot_inc
    return lab[..., :stokes_dim, :stokes_dim]


@dataclass(frozen=True)
class SingleScatteringData:
    """
    Tabulated single-scattering properties of one scattering element.

    Attributes:
        ptype: Orientation symmetry class.
        f_grid: Frequency grid [Hz], ascending.
        t_grid: Temperature grid [K], ascending.
        za_grid: Scattering-angle grid [deg] (totally random) or polar
            angle grid [deg] shared by incidence and scattering
            (azimuthally random).
        aa_grid: Azimuth-difference grid [deg], 0..180 (azimuthally random only).
        pha_mat_data: (nf, nt, nza, 6) or (nf, nt, nza, naa, nza, 4, 4).
        ext_mat_data: (nf, nt) or (nf, nt, nza, 3).
        abs_vec_data: (nf, nt) or (nf, nt, nza, 2).
        description: Free text.
    """

    ptype: ParticleType
    f_grid: NDArray[np.floating]
    t_grid: NDArray[np.floating]
    za_grid: NDArray[np.floating]
    aa_grid: NDArray[np.floating]
    pha_mat_data: NDArray[np.floating]
    ext_mat_data: NDArray[np.floating]
    abs_vec_data: NDArray[np.floating]
    description: str = ""

    def __post_init__(self):
        nf, nt, nza, naa = self.f_grid.size, self.t_grid.size, self.za_grid.size, self.aa_grid.size
        if self.ptype is ParticleType.TOTALLY_RANDOM:
            expected = {
                "pha_mat_data": (nf, nt, nza, 6),
                "ext_mat_data": (nf, nt),
                "abs_vec_data": (nf, nt),
            }
        elif self.ptype is ParticleType.AZIMUTHALLY_RANDOM:
            expected = {
                "pha_mat_data": (nf, nt, nza, naa, nza, 4, 4),
                "ext_mat_data": (nf, nt, nza, 3),
                "abs_vec_data": (nf, nt, nza, 2),
            }
        else:
            # General orientation is representable but rejected by the solver
            return
        for name, shape in expected.items():
            got = getattr(self, name).shape
            if got != shape:
                raise InvalidAtmosphere(
                    f"Single scattering data '{self.description}' has {name} of shape {got}, expected {shape}",
                    field=name,
                    expected=str(shape),
                    got=str(got),
                )

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def _totally_random(
        cls,
        elements: NDArray[np.floating],
        extinction: float,
        absorption: float,
        f_grid: ArrayLike,
        t_grid: ArrayLike,
        za_grid: NDArray[np.floating],
        description: str,
    ) -> SingleScatteringData:
        f_grid = np.atleast_1d(np.asarray(f_grid, dtype=np.float64))
        t_grid = np.atleast_1d(np.asarray(t_grid, dtype=np.float64))
        nf, nt = f_grid.size, t_grid.size
        pha = np.broadcast_to(elements, (nf, nt) + elements.shape).copy()
        return cls(
            ptype=ParticleType.TOTALLY_RANDOM,
            f_grid=f_grid,
            t_grid=t_grid,
            za_grid=za_grid,
            aa_grid=np.zeros(0),
            pha_mat_data=pha,
            ext_mat_data=np.full((nf, nt), float(extinction)),
            abs_vec_data=np.full((nf, nt), float(absorption)),
            description=description,
        )

    @classmethod
    def henyey_greenstein(
        cls,
        asymmetry: float,
        extinction: float,
        single_scattering_albedo: float,
        f_grid: ArrayLike = (1.0e11,),
        t_grid: ArrayLike = (273.15,),
        n_angles: int = 1801,
    ) -> SingleScatteringData:
        """
        Totally random particle with a Henyey-Greenstein phase function.

        Polarization is carried through unchanged (F22 = F33 = F44 = F11).

        Args:
            asymmetry: Asymmetry parameter g in (-1, 1).
            extinction: Extinction cross section [m^2].
            single_scattering_albedo: Scattering / extinction in [0, 1].
            f_grid: Frequencies [Hz] the table is valid for.
            t_grid: Temperatures [K] the table is valid for.
            n_angles: Scattering-angle grid points over 0..180 deg.
        """
        if not -1.0 < asymmetry < 1.0:
            raise InvalidConfiguration("asymmetry", f"must lie in (-1, 1), got {asymmetry}")
        if not 0.0 <= single_scattering_albedo <= 1.0:
            raise InvalidConfiguration(
                "single_scattering_albedo", f"must lie in [0, 1], got {single_scattering_albedo}"
            )
        theta = np.linspace(0.0, 180.0, n_angles)
        mu = np.cos(theta * DEG2RAD)
        g = asymmetry
        sca = extinction * single_scattering_albedo
        f11 = sca / (4.0 * np.pi) * (1.0 - g**2) / (1.0 + g**2 - 2.0 * g * mu) ** 1.5
        elements = np.zeros((n_angles, 6))
        elements[:, 0] = f11
        elements[:, 2] = f11
        elements[:, 3] = f11
        elements[:, 5] = f11
        return cls._totally_random(
            elements,
            extinction,
            extinction - sca,
            f_grid,
            t_grid,
            theta,
            f"Henyey-Greenstein g={g}",
        )

    @classmethod
    def isotropic(
        cls,
        extinction: float,
        single_scattering_albedo: float,
        f_grid: ArrayLike = (1.0e11,),
        t_grid: ArrayLike = (273.15,),
    ) -> SingleScatteringData:
        """Totally random, isotropically scattering and fully depolarizing particle."""
        if not 0.0 <= single_scattering_albedo <= 1.0:
            raise InvalidConfiguration(
                "single_scattering_albedo", f"must lie in [0, 1], got {single_scattering_albedo}"
            )
        theta = np.array([0.0, 180.0])
        sca = extinction * single_scattering_albedo
        elements = np.zeros((2, 6))
        elements[:, 0] = sca / (4.0 * np.pi)
        return cls._totally_random(
            elements, extinction, extinction - sca, f_grid, t_grid, theta, "isotropic"
        )

    @classmethod
    def rayleigh(
        cls,
        extinction: float,
        single_scattering_albedo: float,
        f_grid: ArrayLike = (1.0e11,),
        t_grid: ArrayLike = (273.15,),
        n_angles: int = 181,
    ) -> SingleScatteringData:
        """Totally random particle in the Rayleigh (small-particle) limit."""
        if not 0.0 <= single_scattering_albedo <= 1.0:
            raise InvalidConfiguration(
                "single_scattering_albedo", f"must lie in [0, 1], got {single_scattering_albedo}"
            )
        theta = np.linspace(0.0, 180.0, n_angles)
        mu = np.cos(theta * DEG2RAD)
        sca = extinction * single_scattering_albedo
        c = 3.0 * sca / (16.0 * np.pi)
        elements = np.zeros((n_angles, 6))
        elements[:, 0] = c * (1.0 + mu**2)
        elements[:, 1] = c * (mu**2 - 1.0)
        elements[:, 2] = c * (1.0 + mu**2)
        elements[:, 3] = 2.0 * c * mu
        elements[:, 5] = 2.0 * c * mu
        return cls._totally_random(
            elements, extinction, extinction - sca, f_grid, t_grid, theta, "Rayleigh"
        )

    def to_azimuthally_random(self, za_grid: ArrayLike, aa_grid: ArrayLike) -> SingleScatteringData:
        """
        Tabulate a totally random particle on azimuthally random grids.

        The result describes the same particle and is mainly useful to
        cross-check the two aggregation paths.
        """
        if self.ptype is not ParticleType.TOTALLY_RANDOM:
            raise InvalidConfiguration("ptype", "only totally random data can be re-tabulated")
        za = np.asarray(za_grid, dtype=np.float64)
        aa = np.asarray(aa_grid, dtype=np.float64)
        nf, nt, nza = self.f_grid.size, self.t_grid.size, za.size
        pha = np.empty((nf, nt, nza, aa.size, nza, 4, 4))
        for fi, f in enumerate(self.f_grid):
            for ti, t in enumerate(self.t_grid):
                pha[fi, ti] = self.phase_matrix(
                    f, t, za[:, None, None], aa[None, :, None], za[None, None, :], 0.0, stokes_dim=4
                )
        ext = np.zeros((nf, nt, nza, 3))
        ext[..., 0] = self.ext_mat_data[:, :, None]
        absorption = np.zeros((nf, nt, nza, 2))
        absorption[..., 0] = self.abs_vec_data[:, :, None]
        return SingleScatteringData(
            ptype=ParticleType.AZIMUTHALLY_RANDOM,
            f_grid=self.f_grid.copy(),
            t_grid=self.t_grid.copy(),
            za_grid=za,
            aa_grid=aa,
            pha_mat_data=pha,
            ext_mat_data=ext,
            abs_vec_data=absorption,
            description=f"{self.description} (azimuthally random tabulation)",
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def temperature_index(self, method: str) -> int:
        """Index into ``t_grid`` for phase-matrix construction ("low", "median", "high")."""
        if method == "low":
            return 0
        if method == "high":
            return self.t_grid.size - 1
        if method == "median":
            return self.t_grid.size // 2
        raise InvalidConfiguration("pfct_method", f"unknown method {method!r}")

    def interpolate_table(
        self, table: NDArray[np.floating], frequency: float, temperature: float
    ) -> NDArray[np.floating]:
        """Linearly interpolate a (nf, nt, ...) table to one frequency and temperature (clamped at the edges)."""
        fi0, fi1, fw = interp_weights(self.f_grid, frequency)
        at_f = (1.0 - fw) * table[fi0] + fw * table[fi1]
        ti0, ti1, tw = interp_weights(self.t_grid, temperature)
        return (1.0 - tw) * at_f[ti0] + tw * at_f[ti1]

    def _require_supported(self) -> None:
        if self.ptype is ParticleType.GENERAL:
            raise InvalidAtmosphere(
                f"Particle '{self.description}' has general orientation; only totally and "
                "azimuthally random particles are supported",
                field="ptype",
                expected="totally_random or azimuthally_random",
                got=self.ptype.value,
            )

    def extinction_matrix(
        self, frequency: float, temperature: float, za: ArrayLike = 0.0, stokes_dim: int = 1
    ) -> NDArray[np.floating]:
        """Extinction matrix [m^2] for propagation at polar angle ``za`` [deg], shape ``za.shape + (S, S)``."""
        self._require_supported()
        za = np.asarray(za, dtype=np.float64)
        out = np.zeros(za.shape + (4, 4))
        if self.ptype is ParticleType.TOTALLY_RANDOM:
            k11 = np.broadcast_to(self.interpolate_table(self.ext_mat_data, frequency, temperature), za.shape)
            k12 = k34 = np.zeros(za.shape)
        else:
            table = self.interpolate_table(self.ext_mat_data, frequency, temperature)
            i0, i1, w = interp_weights(self.za_grid, za)
            values = (1.0 - w)[..., None] * table[i0] + w[..., None] * table[i1]
            k11, k12, k34 = values[..., 0], values[..., 1], values[..., 2]
        for k in range(4):
            out[..., k, k] = k11
        out[..., 0, 1] = k12
        out[..., 1, 0] = k12
        out[..., 2, 3] = k34
        out[..., 3, 2] = -k34
        return out[..., :stokes_dim, :stokes_dim]

    def absorption_vector(
        self, frequency: float, temperature: float, za: ArrayLike = 0.0, stokes_dim: int = 1
    ) -> NDArray[np.floating]:
        """Absorption vector [m^2] for propagation at ``za`` [deg], shape ``za.shape + (S,)``."""
        self._require_supported()
        za = np.asarray(za, dtype=np.float64)
        out = np.zeros(za.shape + (4,))
        if self.ptype is ParticleType.TOTALLY_RANDOM:
            out[..., 0] = self.interpolate_table(self.abs_vec_data, frequency, temperature)
        else:
            table = self.interpolate_table(self.abs_vec_data, frequency, temperature)
            i0, i1, w = interp_weights(self.za_grid, za)
            values = (1.0 - w)[..., None] * table[i0] + w[..., None] * table[i1]
            out[..., 0] = values[..., 0]
            out[..., 1] = values[..., 1]
        return out[..., :stokes_dim]

    def phase_matrix(
        self,
        frequency: float,
        temperature: float,
        za_sca: ArrayLike,
        aa_sca: ArrayLike,
        za_inc: ArrayLike,
        aa_inc: ArrayLike,
        stokes_dim: int = 1,
    ) -> NDArray[np.floating]:
        """
        Lab-frame phase matrix for incident and scattered propagation directions.

        Angle arguments broadcast against each other; the result has shape
        ``broadcast_shape + (S, S)``.
        """
        self._require_supported()
        za_sca, aa_sca, za_inc, aa_inc = np.broadcast_arrays(
            *(np.asarray(a, dtype=np.float64) for a in (za_sca, aa_sca, za_inc, aa_inc))
        )
        delta_aa = wrap_azimuth(aa_sca - aa_inc)

        if self.ptype is ParticleType.TOTALLY_RANDOM:
            table = self.interpolate_table(self.pha_mat_data, frequency, temperature)
            za_s = za_sca * DEG2RAD
            za_i = za_inc * DEG2RAD
            cos_theta = np.cos(za_s) * np.cos(za_i) + np.sin(za_s) * np.sin(za_i) * np.cos(delta_aa * DEG2RAD)
            cos_theta = np.clip(cos_theta, -1.0, 1.0)
            theta = np.arccos(cos_theta) * RAD2DEG
            i0, i1, w = interp_weights(self.za_grid, theta)
            elements = (1.0 - w)[..., None] * table[i0] + w[..., None] * table[i1]
            return _lab_frame(elements, za_sca, za_inc, delta_aa, cos_theta, stokes_dim)

        table = self.interpolate_table(self.pha_mat_data, frequency, temperature)
        s0, s1, sw = interp_weights(self.za_grid, za_sca)
        a0, a1, aw = interp_weights(self.aa_grid, np.abs(delta_aa))
        i0, i1, iw = interp_weights(self.za_grid, za_inc)
        result = np.zeros(delta_aa.shape + (4, 4))
        for si, swt in ((s0, 1.0 - sw), (s1, sw)):
            for ai, awt in ((a0, 1.0 - aw), (a1, aw)):
                for ii, iwt in ((i0, 1.0 - iw), (i1, iw)):
                    result += (swt * awt * iwt)[..., None, None] * table[si, ai, ii]
        result = result[..., :stokes_dim, :stokes_dim]
        d = _MIRROR[:stokes_dim]
        mirrored = d[:, None] * result * d[None, :]
        return np.where((delta_aa < 0.0)[..., None, None], mirrored, result)
