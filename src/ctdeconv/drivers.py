from __future__ import annotations

def run_deconv(*, mix, bref, bref_sig_genes, tref_sig_genes, lm6, lm22,
               bcic_min_marker_num, lm6_min_marker_num, lm22_min_marker_num,
               rnaseq, protein, out_prop, out_cellprop):
    from .io import read_gene_list  # import late
    from .deconv.ensemble import ctdeconv_avg
    from .deconv.references import ReferenceSet, load_reference

    refs = ReferenceSet(
        bref=load_reference(bref, name="BRef",
                            sig_genes=read_gene_list(bref_sig_genes) if bref_sig_genes else None),
        lm6=load_reference(lm6, name="LM6"),
        lm22=load_reference(lm22, name="LM22"),
        tref_sig_genes=read_gene_list(tref_sig_genes) if tref_sig_genes else [],
    )
    print(f"[DECONV] Mixture: {mix}")
    res = ctdeconv_avg(
        mix,
        refs,
        bcic_min_marker_num=int(bcic_min_marker_num),
        lm6_min_marker_num=int(lm6_min_marker_num),
        lm22_min_marker_num=int(lm22_min_marker_num),
        rnaseq=bool(rnaseq),
        protein=bool(protein),
        filename=[out_prop, None if protein else out_cellprop],
    )
    used = [k for k, v in res["usedComb"].items() if v]
    print(f"[DECONV] Used combinations: {', '.join(used)}")
    print(f"[DECONV] Wrote {out_prop}")
    if not protein:
        print(f"[DECONV] Wrote {out_cellprop}")
    return res

def run_symbols(*, input_path, output_path, hgnc_file, symbol_col):
    from .io import load_table_auto  # import late
    from .symbols import standardized_symbol

    df = load_table_auto(input_path, index_col=None)
    col = symbol_col if symbol_col else df.columns[0]
    if col not in df.columns:
        raise ValueError(f"Column '{col}' not found in {input_path}")
    out = standardized_symbol(df[col].astype(str).tolist(), hgnc_file=hgnc_file or None)
    out.to_csv(output_path, sep="\t", index=False)
    print(f"[SYMBOLS] Wrote {output_path}")
    return out

def run_barplot(*, input_path, output_path, group_col):
    from .io import load_table_auto  # import late
    from .plotting import barplot_cf
    import matplotlib.pyplot as plt

    df = load_table_auto(input_path, index_col=0)
    groups = None
    if group_col:
        if group_col not in df.columns:
            raise ValueError(f"Column '{group_col}' not found in {input_path}")
        groups = df.pop(group_col).astype(str).tolist()
    fig = barplot_cf(df, group_info=groups, out_path=output_path)
    plt.close(fig)
    print(f"[PLOT] Wrote {output_path}")
    return fig
