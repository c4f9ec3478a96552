"""Structure-from-Motion helpers: image loading, COLMAP text models, NeRFStudio transforms and grid kernels."""

__version__ = "0.1.0"
__all__ = ["app", "colmap_to_nerf", "image_loader", "kernels", "nerfstudio", "production_demo"]