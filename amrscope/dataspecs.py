import numpy as np

# rank file header (32 bytes, little endian)
#    magic - 0-7    (8 bytes, b'AMRSCOPE')
#  version - 8-11   (1 int)
#     kind - 12-15  (1 int, field group code below)
#     rank - 16-19  (1 int, 1-based)
#     nvar - 20-23  (1 int, variables per record)
#     nrec - 24-31  (1 long, records in payload)
# followed immediately by nrec packed records of the group's record dtype
MAGIC = b'AMRSCOPE'
VERSION = 1
header_dtype = np.dtype([('magic','S8'),('version','<i4'),('kind','<i4'),
                         ('rank','<i4'),('nvar','<i4'),('nrec','<i8')])
HEADER_SIZE = header_dtype.itemsize

fileformats = {
    # hydro format (cells)
    #      key - level, cx, cy, cz (4 ints, 1-based cell indices)
    #     vars - nvar doubles (rho, vx, vy, vz, p, passive scalars...)
    'hydro'     : {'code'     : 1,
                   'kind'     : 'grid',
                   'keys'     : [('level','<i4'),('cx','<i4'),('cy','<i4'),('cz','<i4')],
                   'vartype'  : '<f8',
                   'position' : None,
                   'template' : 'hydro_{output:05d}.out{rank:05d}',
                   'vars'     : ['rho','vx','vy','vz','p']},
    # gravity format (cells)
    #      key - level, cx, cy, cz (4 ints)
    #     vars - nvar doubles (epot, ax, ay, az)
    'gravity'   : {'code'     : 2,
                   'kind'     : 'grid',
                   'keys'     : [('level','<i4'),('cx','<i4'),('cy','<i4'),('cz','<i4')],
                   'vartype'  : '<f8',
                   'position' : None,
                   'template' : 'grav_{output:05d}.out{rank:05d}',
                   'vars'     : ['epot','ax','ay','az']},
    # particles format
    #      key - level (1 int), x, y, z (3 doubles, fractional),
    #            id (1 long), family, tag (2 bytes)
    #     vars - nvar doubles (vx, vy, vz, mass, birth...)
    'particles' : {'code'     : 3,
                   'kind'     : 'particle',
                   'keys'     : [('level','<i4'),('x','<f8'),('y','<f8'),('z','<f8'),
                                 ('id','<i8'),('family','i1'),('tag','i1')],
                   'vartype'  : '<f8',
                   'position' : ('x','y','z'),
                   'template' : 'part_{output:05d}.out{rank:05d}',
                   'vars'     : ['vx','vy','vz','mass','birth']},
    # clumps format
    #      key - index (1 long), level (1 int), parent (1 long), ncell (1 long),
    #            peak_x, peak_y, peak_z (3 doubles, fractional)
    #     vars - nvar doubles (rho-, rho+, rho_av, mass_cl, relevance...)
    'clumps'    : {'code'     : 4,
                   'kind'     : 'clump',
                   'keys'     : [('index','<i8'),('level','<i4'),('parent','<i8'),('ncell','<i8'),
                                 ('peak_x','<f8'),('peak_y','<f8'),('peak_z','<f8')],
                   'vartype'  : '<f8',
                   'position' : ('peak_x','peak_y','peak_z'),
                   'template' : 'clump_{output:05d}.out{rank:05d}',
                   'vars'     : ['rho-','rho+','rho_av','mass_cl','relevance']},
}

kinds_by_code = {fmt['code']: name for name, fmt in fileformats.items()}


def var_field(index):
    """Record field name of the 1-based variable `index`."""
    return f'var{index}'


def record_dtype(field_group, nvar):
    """Packed record dtype of `field_group` carrying `nvar` variables."""
    fmt = fileformats[field_group]
    fields = list(fmt['keys'])
    fields += [(var_field(i), fmt['vartype']) for i in range(1, nvar + 1)]
    return np.dtype(fields)


def key_names(field_group):
    return [name for name, _ in fileformats[field_group]['keys']]
