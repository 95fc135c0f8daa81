"""
Real-time depth fusion tracker

Fuses a stream of depth/colour frames into a volumetric reconstruction
while tracking the camera pose, recovering automatically when tracking is
lost.

Per-frame stages:
1. Convert Depth - millimeters to clipped float meters
2. Track Camera - downsampled point cloud alignment with a plausibility gate
3. Relocalize - key frame database search when tracking is lost
4. Integrate - fuse the frame once tracking is trustworthy
5. Render - raycast and shade the volume for presentation
6. Key Frames - periodically store key frames for relocalization
"""

__version__ = "0.1.0"
