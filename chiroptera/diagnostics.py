# -*- coding: utf-8 -*-
"""
测距诊断工具
分析录音频带能量，绘制Chirp、回波和互相关曲线
"""

import numpy as np
from matplotlib.figure import Figure
from scipy import signal as sig


def band_snr_db(recorded, sample_rate, f0, f1, nperseg=4096):
    """
    计算录音在 [f0, f1] 频带内相对带外的能量比

    Args:
        recorded: 录制的音频
        sample_rate: 采样率
        f0, f1: 频带范围 (Hz)

    Returns:
        float: 信噪比 (dB)，录音为空时为 -inf
    """
    recorded = np.asarray(recorded, dtype=np.float64).ravel()
    if recorded.size == 0:
        return float('-inf')

    freqs, psd = sig.welch(recorded, sample_rate, nperseg=min(nperseg, recorded.size))
    mask = (freqs >= f0) & (freqs <= f1)
    target_energy = np.mean(psd[mask]) if np.any(mask) else 0.0
    other_energy = np.mean(psd[~mask]) if np.any(~mask) else 0.0
    return float(10 * np.log10((target_energy + 1e-20) / (other_energy + 1e-20)))


def plot_ping(analysis, result, sample_rate, save_path=None):
    """
    绘制一次测距的诊断图

    Args:
        analysis: EchoAnalysis
        result: PingResult
        sample_rate: 采样率
        save_path: 保存路径，None 时只返回图对象

    Returns:
        matplotlib.figure.Figure
    """
    fig = Figure(figsize=(10, 8), dpi=100)
    ax_chirp, ax_echo, ax_corr = fig.subplots(3, 1)

    t_ref = np.arange(analysis.reference.size) / sample_rate * 1000
    ax_chirp.plot(t_ref, analysis.reference, linewidth=0.6)
    ax_chirp.set_title('Reference chirp')
    ax_chirp.set_xlabel('ms')

    t_echo = np.arange(analysis.echo.size) / sample_rate * 1000
    ax_echo.plot(t_echo, analysis.echo, linewidth=0.6, color='tab:orange')
    ax_echo.set_title('Recorded echo')
    ax_echo.set_xlabel('ms')

    lags = np.arange(analysis.curve.size) / sample_rate * 1000
    ax_corr.plot(lags, analysis.curve, linewidth=0.6, color='tab:green')
    if analysis.has_signal:
        ax_corr.axvline(analysis.peak_index / sample_rate * 1000, color='red', linestyle='--')
    ax_corr.set_title(
        f'Correlation: distance={result.distance_meters:.3f} m, '
        f'confidence={result.confidence:.2f}, '
        f'clarity={result.signal_quality.echo_clarity:.2f}')
    ax_corr.set_xlabel('lag (ms)')

    fig.tight_layout()
    if save_path:
        fig.savefig(save_path)
    return fig
